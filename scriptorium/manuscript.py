# scriptorium/manuscript.py
"""
Manuscript records.

A manuscript is identified by its content hash. The record tracks who
owns it, how it has been revised, how it is categorized, who may work
on it, and how its proceeds are split.
"""

import copy
import hashlib
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


def content_hash_of(path: Path | str, algorithm: str = "sha3_256") -> str:
    """
    Compute content hash of a file.

    Uses SHA-3 by default.

    Args:
        path: File to hash
        algorithm: Hash algorithm (sha3_256, sha3_512, sha256, blake2b)

    Returns:
        Full hex digest
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class Permission(str, Enum):
    """Common collaborator permission labels. Any string is accepted."""
    READ = "read"
    EDIT = "edit"
    DELETE = "delete"
    PUBLISH = "publish"
    MANAGE = "manage"


def normalize_permissions(permissions) -> List[str]:
    """Flatten to plain strings, dropping duplicates but keeping order."""
    seen = []
    for perm in permissions or []:
        label = perm.value if isinstance(perm, Permission) else str(perm)
        if label not in seen:
            seen.append(label)
    return seen


@dataclass
class VersionEntry:
    """A content revision appended to a manuscript."""
    content_hash: str
    number: Optional[int] = None
    notes: str = ""
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "number": self.number,
            "notes": self.notes,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VersionEntry":
        return cls(
            content_hash=data["content_hash"],
            number=data.get("number"),
            notes=data.get("notes", ""),
            created_at=data.get("created_at", time.time()),
        )


@dataclass
class Manuscript:
    """
    A registered manuscript.

    Attributes:
        content_hash: Unique content hash - the canonical identifier
        owner: Identity of the current owner
        title: Descriptive title (immutable)
        metadata: Opaque descriptive metadata (immutable)
        versions: Revisions, most recent last
        categories: Category labels, in the order added
        tags: Tags, in the order added
        collaborators: Identity -> permission labels
        revenue_shares: Identity -> percentage (0-100)
        created_at: Timestamp when registered
    """
    content_hash: str
    owner: str
    title: str = ""
    metadata: str = ""
    versions: List[VersionEntry] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    collaborators: Dict[str, List[str]] = field(default_factory=dict)
    revenue_shares: Dict[str, float] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)

    @property
    def version_hashes(self) -> List[str]:
        """Revision hashes, most recent last."""
        return [v.content_hash for v in self.versions]

    @property
    def latest_version(self) -> Optional[VersionEntry]:
        return self.versions[-1] if self.versions else None

    @property
    def total_share(self) -> float:
        return sum(self.revenue_shares.values())

    def permissions_of(self, collaborator: str) -> List[str]:
        return list(self.collaborators.get(collaborator, []))

    def snapshot(self) -> "Manuscript":
        """Independent copy safe to hand to readers."""
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "owner": self.owner,
            "title": self.title,
            "metadata": self.metadata,
            "versions": [v.to_dict() for v in self.versions],
            "categories": list(self.categories),
            "tags": list(self.tags),
            "collaborators": {k: list(v) for k, v in self.collaborators.items()},
            "revenue_shares": dict(self.revenue_shares),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manuscript":
        versions = []
        for entry in data.get("versions", []):
            # Bare hashes are accepted as versions without number/notes
            if isinstance(entry, str):
                versions.append(VersionEntry(content_hash=entry))
            else:
                versions.append(VersionEntry.from_dict(entry))
        return cls(
            content_hash=data["content_hash"],
            owner=data["owner"],
            title=data.get("title", ""),
            metadata=data.get("metadata", ""),
            versions=versions,
            categories=data.get("categories", []),
            tags=data.get("tags", []),
            collaborators={
                k: normalize_permissions(v)
                for k, v in data.get("collaborators", {}).items()
            },
            revenue_shares=data.get("revenue_shares", {}),
            created_at=data.get("created_at", time.time()),
        )
