"""
Job identity codec.

Category labels of the form ``Category:<prefix>-<endpointType>-<instanceID>``
and artifact names of the form ``<endpointType>-<instanceID>.json`` are two
renderings of the same JobIdentity.
"""

from typing import Optional

from jobsync.errors import InvalidFormat
from jobsync.models import JobIdentity

CATEGORY_NAMESPACE = "Category:"
SEPARATOR = "-"
ARTIFACT_SUFFIX = ".json"

# Unicode dash variants stay distinct code points; only ASCII "-" separates.
DASH_VARIANTS = (
    "\u2010", "\u2011", "\u2012", "\u2013", "\u2014", "\u2015", "\u2212",
)

_STRIPPED_CHARS = str.maketrans({
    ",": None,
    "\u00a0": None,  # no-break space
    "\u202f": None,  # narrow no-break space
})


def normalize_category(label: str) -> str:
    """Trim whitespace and drop commas and no-break spaces from a label."""
    return label.strip().translate(_STRIPPED_CHARS)


def parse_category(label: str, prefix: str) -> JobIdentity:
    """
    Parse a category label into a job identity.

    Args:
        label: Category label as listed by the wiki
        prefix: Configured category prefix (matched case-insensitively)

    Returns:
        JobIdentity for the label

    Raises:
        InvalidFormat: If the label does not encode a job identity
    """
    if not isinstance(label, str):
        raise InvalidFormat(f"invalid category format: {label!r}")

    normalized = normalize_category(label)
    expected = f"{CATEGORY_NAMESPACE}{prefix}{SEPARATOR}"
    if len(normalized) < len(expected) or normalized[:len(expected)].lower() != expected.lower():
        raise InvalidFormat(f"invalid category format: {label}")

    endpoint_type, sep, instance_id = normalized[len(expected):].partition(SEPARATOR)
    if not sep or not endpoint_type or not instance_id:
        raise InvalidFormat(f"invalid category format: {label}")

    return JobIdentity(endpoint_type=endpoint_type, instance_id=instance_id)


def render_category(endpoint_type: str, instance_id: str, prefix: str) -> str:
    """
    Render the category label for a job identity.

    The first letter of the prefix is upper-cased the way MediaWiki
    normalizes titles, so rendered labels match the listed ones.
    """
    prefix = prefix[:1].upper() + prefix[1:]
    return f"{CATEGORY_NAMESPACE}{prefix}{SEPARATOR}{endpoint_type}{SEPARATOR}{instance_id}"


def artifact_filename(identity: JobIdentity) -> str:
    return identity.artifact_filename()


def identity_from_filename(filename: str) -> Optional[JobIdentity]:
    """
    Derive a job identity from an artifact filename.

    Returns None for names that are not ``<endpointType>-<instanceID>.json``
    (static documents such as ``about.json`` share the directory).
    """
    if not filename.endswith(ARTIFACT_SUFFIX):
        return None
    base = filename[:-len(ARTIFACT_SUFFIX)]
    endpoint_type, sep, instance_id = base.partition(SEPARATOR)
    if not sep or not endpoint_type or not instance_id:
        return None
    return JobIdentity(endpoint_type=endpoint_type, instance_id=instance_id)
