# scriptorium/registry.py
"""
The manuscript registry.

The registry is the sole authority over which manuscripts exist and
how they change. Each operation checks existence, ownership and domain
limits before touching state, then commits the whole record at once.
Failures come back as Result values, never as exceptions.

Example:
    registry = Registry()
    registry.register("alice", "hash-001", "Ancient Text", "meta")
    registry.add_collaborator("alice", "hash-001", "bob", ["edit"])
    registry.has_permission("hash-001", "bob", "edit").value  # True
"""

import logging
import math
from pathlib import Path
from typing import Callable, List, Optional

from .locks import KeyedLock
from .manuscript import Manuscript, VersionEntry, content_hash_of, normalize_permissions
from .provenance import ProvenanceLog
from .result import ErrorKind, Result
from .store import ManuscriptStore, MemoryStore

logger = logging.getLogger(__name__)

MAX_TAGS_PER_CALL = 10
MAX_SHARE_TOTAL = 100


class Registry:
    """
    Registry of manuscripts keyed by content hash.

    Args:
        store: Where records live (a fresh MemoryStore by default)
        provenance: Optional log receiving one event per successful mutation
        max_tags_per_call: Tag limit for a single add_category call
        max_share_total: Ceiling for the sum of revenue shares
    """

    def __init__(
        self,
        store: ManuscriptStore = None,
        provenance: ProvenanceLog = None,
        max_tags_per_call: int = MAX_TAGS_PER_CALL,
        max_share_total: float = MAX_SHARE_TOTAL,
    ):
        self.store = store if store is not None else MemoryStore()
        self.provenance = provenance
        self.max_tags_per_call = max_tags_per_call
        self.max_share_total = max_share_total
        self._locks = KeyedLock()

    def _record(self, event_type: str, content_hash: str, actor: str, **data):
        if self.provenance is not None:
            self.provenance.record(event_type, content_hash, actor, **data)

    def _fail(self, kind: ErrorKind, message: str) -> Result:
        logger.debug(f"{kind.label}: {message}")
        return Result.fail(kind, message)

    def _mutate(
        self,
        caller: str,
        content_hash: str,
        apply: Callable[[Manuscript], Optional[Result]],
        event_type: str,
        denied: ErrorKind = ErrorKind.PERMISSION_DENIED,
        **event_data,
    ) -> Result:
        """
        Run an owner-only mutation under the key's write lock.

        apply() receives a private copy of the record. It returns a
        failure Result to abort, or None to have the copy committed.
        The provenance event is recorded under the same lock, in commit
        order. If recording fails the previous record is restored before
        the error propagates.
        """
        with self._locks.write(content_hash):
            manuscript = self.store.load(content_hash)
            if manuscript is None:
                return self._fail(ErrorKind.NOT_FOUND, f"Manuscript {content_hash} not found")
            if manuscript.owner != caller:
                return self._fail(denied, f"{caller} is not the owner of {content_hash}")

            previous = manuscript.snapshot()
            failure = apply(manuscript)
            if failure is not None:
                return failure

            self.store.save(manuscript)
            try:
                self._record(event_type, content_hash, caller, **event_data)
            except Exception:
                logger.error(f"Provenance write failed, rolling back {event_type} on {content_hash}")
                self.store.save(previous)
                raise
        return Result.ok(True)

    # Mutations

    def register(self, caller: str, content_hash: str, title: str = "", metadata: str = "") -> Result:
        """
        Register a manuscript with the caller as its owner.

        Fails with INVALID_KEY for an empty hash and ALREADY_EXISTS for a
        hash that is already registered.
        """
        if not content_hash or not content_hash.strip():
            return self._fail(ErrorKind.INVALID_KEY, "Manuscript hash must not be empty")

        with self._locks.write(content_hash):
            if self.store.exists(content_hash):
                return self._fail(ErrorKind.ALREADY_EXISTS, f"Manuscript {content_hash} already registered")
            self.store.save(Manuscript(
                content_hash=content_hash,
                owner=caller,
                title=title,
                metadata=metadata,
            ))
            try:
                self._record("Register", content_hash, caller, title=title)
            except Exception:
                logger.error(f"Provenance write failed, rolling back Register of {content_hash}")
                self.store.discard(content_hash)
                raise

        logger.info(f"Registered {content_hash} for {caller}")
        return Result.ok(True)

    def register_file(self, caller: str, path: Path | str, title: str = "", metadata: str = "") -> Result:
        """
        Register a file by its SHA-3-256 content hash.

        On success the value is the computed hash. A missing file raises
        FileNotFoundError.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Manuscript file not found: {path}")

        content_hash = content_hash_of(path)
        result = self.register(caller, content_hash, title or path.name, metadata)
        return Result.ok(content_hash) if result else result

    def transfer_ownership(self, caller: str, content_hash: str, new_owner: str) -> Result:
        """Hand the manuscript to new_owner. Only the owner may transfer."""
        def apply(manuscript: Manuscript):
            manuscript.owner = new_owner

        result = self._mutate(
            caller, content_hash, apply, "Transfer",
            denied=ErrorKind.NOT_OWNER, new_owner=new_owner,
        )
        if result:
            logger.info(f"Transferred {content_hash} from {caller} to {new_owner}")
        return result

    def add_version(
        self,
        caller: str,
        content_hash: str,
        new_version_hash: str,
        version_number: int = None,
        notes: str = "",
    ) -> Result:
        """Append a revision. version_number and notes are stored as given."""
        def apply(manuscript: Manuscript):
            manuscript.versions.append(VersionEntry(
                content_hash=new_version_hash,
                number=version_number,
                notes=notes,
            ))

        return self._mutate(
            caller, content_hash, apply, "AddVersion",
            version_hash=new_version_hash, number=version_number, notes=notes,
        )

    def add_category(self, caller: str, content_hash: str, category: str, tags: List[str] = None) -> Result:
        """
        Append a category and a batch of tags.

        The tag limit applies to this batch only, not to the tags already
        stored.
        """
        tags = list(tags or [])

        def apply(manuscript: Manuscript):
            if len(tags) > self.max_tags_per_call:
                return self._fail(
                    ErrorKind.TOO_MANY_TAGS,
                    f"{len(tags)} tags given, at most {self.max_tags_per_call} allowed per call",
                )
            manuscript.categories.append(category)
            manuscript.tags.extend(tags)

        return self._mutate(caller, content_hash, apply, "AddCategory", category=category, tags=tags)

    def add_collaborator(self, caller: str, content_hash: str, collaborator: str, permissions: List[str]) -> Result:
        """Grant permissions to a collaborator, replacing any earlier grant."""
        permissions = normalize_permissions(permissions)

        def apply(manuscript: Manuscript):
            manuscript.collaborators[collaborator] = permissions

        return self._mutate(
            caller, content_hash, apply, "AddCollaborator",
            collaborator=collaborator, permissions=permissions,
        )

    def set_revenue_share(self, caller: str, content_hash: str, account: str, percentage: float) -> Result:
        """
        Set an account's share of proceeds.

        The account's previous share is replaced, and the limit is checked
        against the other accounts' shares plus the new value.
        """
        def apply(manuscript: Manuscript):
            if not math.isfinite(percentage) or not 0 <= percentage <= 100:
                return self._fail(ErrorKind.INVALID_SHARE, f"Share {percentage} is outside 0-100")
            others = sum(v for k, v in manuscript.revenue_shares.items() if k != account)
            if others + percentage > self.max_share_total:
                return self._fail(
                    ErrorKind.SHARE_LIMIT_EXCEEDED,
                    f"Shares would total {others + percentage}, limit is {self.max_share_total}",
                )
            manuscript.revenue_shares[account] = percentage

        return self._mutate(
            caller, content_hash, apply, "SetRevenueShare",
            account=account, percentage=percentage,
        )

    # Queries

    def get_details(self, content_hash: str) -> Result:
        """Return a snapshot of the manuscript. Reads are public."""
        with self._locks.read(content_hash):
            manuscript = self.store.load(content_hash)
        if manuscript is None:
            return Result.fail(ErrorKind.NOT_FOUND, f"Manuscript {content_hash} not found")
        return Result.ok(manuscript)

    def get(self, content_hash: str) -> Optional[Manuscript]:
        """Snapshot of the manuscript, or None."""
        return self.get_details(content_hash).value

    def has_permission(self, content_hash: str, collaborator: str, permission: str) -> Result:
        """
        Check a collaborator's permission.

        An unknown collaborator yields a successful False; an unknown
        manuscript yields NOT_FOUND.
        """
        permission = normalize_permissions([permission])[0]
        with self._locks.read(content_hash):
            manuscript = self.store.load(content_hash)
        if manuscript is None:
            return Result.fail(ErrorKind.NOT_FOUND, f"Manuscript {content_hash} not found")
        return Result.ok(permission in manuscript.permissions_of(collaborator))

    def verify_ownership(self, content_hash: str, account: str) -> Result:
        """Succeed only if account currently owns the manuscript."""
        with self._locks.read(content_hash):
            manuscript = self.store.load(content_hash)
        if manuscript is None:
            return Result.fail(ErrorKind.NOT_FOUND, f"Manuscript {content_hash} not found")
        if manuscript.owner != account:
            return Result.fail(ErrorKind.NOT_OWNER, f"{account} is not the owner of {content_hash}")
        return Result.ok(True)

    def list_manuscripts(self) -> List[Manuscript]:
        return self.store.load_all()

    def find_by_owner(self, owner: str) -> List[Manuscript]:
        return [m for m in self.store.load_all() if m.owner == owner]

    def find_by_category(self, category: str) -> List[Manuscript]:
        return [m for m in self.store.load_all() if category in m.categories]

    def find_by_tag(self, tag: str) -> List[Manuscript]:
        return [m for m in self.store.load_all() if tag in m.tags]

    def history(self, content_hash: str) -> Result:
        """Provenance events for a manuscript, oldest first."""
        if not self.store.exists(content_hash):
            return Result.fail(ErrorKind.NOT_FOUND, f"Manuscript {content_hash} not found")
        if self.provenance is None:
            return Result.ok([])
        return Result.ok(self.provenance.for_manuscript(content_hash))

    def __contains__(self, content_hash: str) -> bool:
        return self.store.exists(content_hash)

    def __len__(self) -> int:
        return len(self.store)

    def __iter__(self):
        return iter(self.store.load_all())
