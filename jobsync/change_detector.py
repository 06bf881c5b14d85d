"""
Change detection for fetched payloads.

This module provides:
- Deterministic canonical serialization of JSON objects
- Comparison of a fresh payload against the last persisted artifact,
  ignoring the injected lastUpdated timestamp
"""

import hashlib
import json
from typing import Any, Dict, Optional

import structlog

from datasource.storage import LAST_UPDATED_FIELD, ArtifactStore

logger = structlog.get_logger(__name__)


def canonical_json(payload: Dict[str, Any]) -> bytes:
    """Serialize a JSON object with sorted keys and no insignificant whitespace."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _load_object(data: bytes) -> Optional[Dict[str, Any]]:
    """Parse bytes as a JSON object; None if they are anything else."""
    try:
        parsed = json.loads(data)
    except (ValueError, UnicodeDecodeError):
        return None
    return parsed if isinstance(parsed, dict) else None


class ChangeDetector:
    """Decides whether a fetched payload warrants a downstream write."""

    def __init__(self, store: ArtifactStore, volatile_field: str = LAST_UPDATED_FIELD):
        """
        Initialize change detector.

        Args:
            store: Artifact store holding the last persisted payloads
            volatile_field: Field excluded from comparisons
        """
        self.store = store
        self.volatile_field = volatile_field
        self.logger = logger.bind(component="change_detector")

    def has_changed(self, path: str, new_data: bytes) -> bool:
        """
        Compare a fresh payload with the persisted artifact at path.

        Args:
            path: Artifact path relative to the data directory
            new_data: Freshly fetched payload bytes

        Returns:
            True if there is no artifact yet or the content differs

        Raises:
            StorageError: If the existing artifact cannot be read
        """
        old_data = self.store.read_existing(path)
        if old_data is None:
            self.logger.debug("No previous artifact", path=path)
            return True

        old_object = _load_object(old_data)
        new_object = _load_object(new_data) if old_object is not None else None
        if old_object is None or new_object is None:
            # structural comparison impossible
            changed = old_data != new_data
            self.logger.debug("Compared raw bytes", path=path, changed=changed)
            return changed

        old_object.pop(self.volatile_field, None)
        old_canonical = canonical_json(old_object)
        new_canonical = canonical_json(new_object)
        changed = old_canonical != new_canonical

        if changed:
            self.logger.debug(
                "Content changed",
                path=path,
                old_hash=content_hash(old_canonical)[:16] + "...",
                new_hash=content_hash(new_canonical)[:16] + "..."
            )
        return changed
