# scriptorium/provenance.py
"""
Provenance log for manuscripts.

Every successful registry mutation is recorded as an event in an
append-only log. Events can be signed with the registry's own RSA key
so that an exported log can later be checked for tampering.

Event types:
- Register: a manuscript was registered by its first owner
- Transfer: ownership moved to a new identity
- AddVersion, AddCategory, AddCollaborator, SetRevenueShare
"""

import base64
import hashlib
import json
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .store import atomic_write_json

logger = logging.getLogger(__name__)

SIGNATURE_TYPE = "RsaSignature2017"


def _canonicalize(data: Dict[str, Any]) -> str:
    """Sorted keys, no whitespace."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def _hash_sha256(data: str) -> bytes:
    return hashlib.sha256(data.encode()).digest()


def _timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


@dataclass
class ProvenanceEvent:
    """
    A recorded mutation of a manuscript.

    Attributes:
        event_id: Unique identifier
        event_type: Register, Transfer, AddVersion, ...
        content_hash: The manuscript the event applies to
        actor: Identity that performed the mutation
        data: Operation-specific fields
        published: ISO timestamp
        signature: Registry signature (added after signing)
    """
    event_id: str
    event_type: str
    content_hash: str
    actor: str
    data: Dict[str, Any] = field(default_factory=dict)
    published: str = field(default_factory=_timestamp)
    signature: Optional[Dict[str, Any]] = None

    @classmethod
    def create(cls, event_type: str, content_hash: str, actor: str, **data) -> "ProvenanceEvent":
        return cls(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            content_hash=content_hash,
            actor=actor,
            data=data,
        )

    def signable(self) -> Dict[str, Any]:
        """Event body without the signature."""
        body = self.to_dict()
        body.pop("signature")
        return body

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "content_hash": self.content_hash,
            "actor": self.actor,
            "data": self.data,
            "published": self.published,
            "signature": self.signature,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvenanceEvent":
        return cls(
            event_id=data["event_id"],
            event_type=data["event_type"],
            content_hash=data["content_hash"],
            actor=data["actor"],
            data=data.get("data", {}),
            published=data.get("published", ""),
            signature=data.get("signature"),
        )


class RegistryKey:
    """
    RSA key pair the registry signs its provenance events with.

    Attributes:
        key_id: Identifier written into each signature
        public_key: PEM-encoded public key
        private_key: PEM-encoded private key (None for verify-only keys)
    """

    def __init__(self, key_id: str, public_key: bytes, private_key: Optional[bytes] = None):
        self.key_id = key_id
        self.public_key = public_key
        self.private_key = private_key

    @classmethod
    def generate(cls, key_id: str = "registry#main-key") -> "RegistryKey":
        """Generate a new 2048-bit key pair."""
        private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return cls(key_id, public_pem, private_pem)

    @classmethod
    def load(cls, path: Path | str, key_id: str = "registry#main-key") -> "RegistryKey":
        """Load a PEM private key from disk."""
        with open(path, "rb") as f:
            private_pem = f.read()
        private_key = serialization.load_pem_private_key(private_pem, password=None)
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        return cls(key_id, public_pem, private_pem)

    def save(self, path: Path | str) -> None:
        """Write the private key as PEM."""
        if self.private_key is None:
            raise ValueError("Cannot save a verify-only key")
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.private_key)
        path.chmod(0o600)


def _signed_bytes(event: ProvenanceEvent, options: Dict[str, Any]) -> bytes:
    options_hash = _hash_sha256(_canonicalize(options))
    document_hash = _hash_sha256(_canonicalize(event.signable()))
    return options_hash + document_hash


def sign_event(event: ProvenanceEvent, key: RegistryKey) -> ProvenanceEvent:
    """
    Sign an event with the registry key (RSA-SHA256).

    Args:
        event: The event to sign
        key: Registry key holding a private key

    Returns:
        The same event with its signature attached
    """
    if key.private_key is None:
        raise ValueError("Signing requires a private key")
    private_key = serialization.load_pem_private_key(key.private_key, password=None)

    options = {
        "type": SIGNATURE_TYPE,
        "creator": key.key_id,
        "created": _timestamp(),
    }
    signature_bytes = private_key.sign(
        _signed_bytes(event, options),
        padding.PKCS1v15(),
        hashes.SHA256(),
    )
    event.signature = dict(options, signatureValue=base64.b64encode(signature_bytes).decode("utf-8"))
    return event


def verify_event(event: ProvenanceEvent, public_key_pem: bytes) -> bool:
    """Return True if the event carries a valid signature for this key."""
    if not event.signature:
        return False

    try:
        public_key = serialization.load_pem_public_key(public_key_pem)
        options = {
            "type": event.signature["type"],
            "creator": event.signature["creator"],
            "created": event.signature["created"],
        }
        signature_bytes = base64.b64decode(event.signature["signatureValue"])
        public_key.verify(
            signature_bytes,
            _signed_bytes(event, options),
            padding.PKCS1v15(),
            hashes.SHA256(),
        )
        return True
    except (InvalidSignature, KeyError, ValueError):
        return False


class ProvenanceLog:
    """
    Append-only log of provenance events.

    Kept in memory, or persisted to store_dir/events.json when a
    directory is given.
    """

    def __init__(self, store_dir: Path | str = None, key: RegistryKey = None):
        self.store_dir = Path(store_dir) if store_dir else None
        self.key = key
        self._lock = threading.Lock()
        self._events: List[ProvenanceEvent] = []
        if self.store_dir:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self._load()

    def _log_path(self) -> Path:
        return self.store_dir / "events.json"

    def _load(self):
        log_path = self._log_path()
        if log_path.exists():
            with open(log_path) as f:
                data = json.load(f)
            self._events = [ProvenanceEvent.from_dict(e) for e in data.get("events", [])]

    def _save(self, events: List[ProvenanceEvent]):
        if not self.store_dir:
            return
        data = {
            "version": "1.0",
            "events": [e.to_dict() for e in events],
        }
        atomic_write_json(self._log_path(), data)

    def record(self, event_type: str, content_hash: str, actor: str, **data) -> ProvenanceEvent:
        """Create, sign (if a key is set) and append an event."""
        event = ProvenanceEvent.create(event_type, content_hash, actor, **data)
        if self.key is not None:
            sign_event(event, self.key)
        with self._lock:
            # Only keep the event once it is on disk
            events = self._events + [event]
            self._save(events)
            self._events = events
        logger.debug(f"Recorded {event_type} for {content_hash[:16]} by {actor}")
        return event

    def list(self) -> List[ProvenanceEvent]:
        with self._lock:
            return list(self._events)

    def for_manuscript(self, content_hash: str) -> List[ProvenanceEvent]:
        """Events for one manuscript, oldest first."""
        return [e for e in self.list() if e.content_hash == content_hash]

    def by_actor(self, actor: str) -> List[ProvenanceEvent]:
        return [e for e in self.list() if e.actor == actor]

    def verify_all(self, public_key_pem: bytes = None) -> List[ProvenanceEvent]:
        """Return events whose signature does not verify."""
        if public_key_pem is None:
            if self.key is None:
                raise ValueError("No key to verify against")
            public_key_pem = self.key.public_key
        return [e for e in self.list() if not verify_event(e, public_key_pem)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)
