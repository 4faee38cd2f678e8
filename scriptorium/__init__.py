# scriptorium - Ownership and rights registry for content-addressed manuscripts
#
# Tracks who owns each manuscript, how it has been revised and categorized,
# which collaborators may act on it, and how its proceeds are shared.
# Manuscripts are identified by their content hash.
#
# Core concepts:
# - Manuscript: A registered record keyed by content hash
# - Registry: The authority that checks and applies every change
# - Result: Success value or exactly one ErrorKind per operation
# - Store: Pluggable key -> record storage (memory or JSON files)
# - ProvenanceLog: Append-only, optionally signed record of changes

from .result import Result, ErrorKind, RegistryError
from .manuscript import Manuscript, VersionEntry, Permission, content_hash_of
from .store import ManuscriptStore, MemoryStore, JSONFileStore
from .locks import KeyedLock, ReadWriteLock
from .provenance import ProvenanceEvent, ProvenanceLog, RegistryKey, sign_event, verify_event
from .registry import Registry
from .config import RegistryConfig, build_registry

__all__ = [
    "Result",
    "ErrorKind",
    "RegistryError",
    "Manuscript",
    "VersionEntry",
    "Permission",
    "content_hash_of",
    "ManuscriptStore",
    "MemoryStore",
    "JSONFileStore",
    "KeyedLock",
    "ReadWriteLock",
    "ProvenanceEvent",
    "ProvenanceLog",
    "RegistryKey",
    "sign_event",
    "verify_event",
    "Registry",
    "RegistryConfig",
    "build_registry",
]

__version__ = "0.1.0"
