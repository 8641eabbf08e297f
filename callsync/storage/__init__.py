# Storage Layer
# Optional best-effort persistence for call session snapshots
#
# This module provides:
# - Port interface (ABC) defining the sink contract
# - In-memory implementation for development/testing
# - SQLAlchemy implementation for durable history
# - Redis implementation for short-lived audit records
# - Background writer that keeps persistence off the critical path
# - Factory for configuration-based adapter selection

from .ports import (
    SnapshotSink,
    SessionSnapshot,
    StorageError,
    PersistenceError,
)
from .memory import InMemorySnapshotSink
from .writer import SnapshotWriter
from .factory import (
    StorageSettings,
    StorageBackend,
    create_sink,
    create_sink_from_env,
    create_sqlite_sink,
    settings_from_env,
)

__all__ = [
    # Ports
    "SnapshotSink",
    "SessionSnapshot",
    "StorageError",
    "PersistenceError",
    # Adapters
    "InMemorySnapshotSink",
    "SnapshotWriter",
    # Factory
    "StorageSettings",
    "StorageBackend",
    "create_sink",
    "create_sink_from_env",
    "create_sqlite_sink",
    "settings_from_env",
]
