"""
Job scheduling and synchronization engine.

This package contains:
- Job identity codec for category labels and artifact names
- Concurrency-safe schedule store
- Bootstrap recovery from persisted artifacts
- Semantic change detection
- Job execution (fetch, persist, publish, purge)
- Discovery and refresh sweeps
- The scheduler service that owns timers and shutdown
"""

__version__ = "1.0.0"
