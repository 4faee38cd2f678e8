# scriptorium/store.py
"""
Manuscript stores.

The registry owns a store and treats it as a key -> record mapping.
Stores hand out independent copies: a caller never holds a live
reference to stored state, and a record only changes on save().

Structure of a JSONFileStore:
    store_dir/
        <sha3(content_hash)>.json    # One document per manuscript
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional

from .manuscript import Manuscript

logger = logging.getLogger(__name__)


class ManuscriptStore:
    """Interface for manuscript storage, keyed by content hash."""

    def load(self, content_hash: str) -> Optional[Manuscript]:
        """Return a copy of the stored record, or None."""
        raise NotImplementedError

    def save(self, manuscript: Manuscript) -> None:
        """Store the full record, replacing any previous one."""
        raise NotImplementedError

    def discard(self, content_hash: str) -> None:
        """Drop a record. Only used to undo a registration that failed to commit."""
        raise NotImplementedError

    def exists(self, content_hash: str) -> bool:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError

    def load_all(self) -> List[Manuscript]:
        records = []
        for key in self.keys():
            manuscript = self.load(key)
            if manuscript is not None:
                records.append(manuscript)
        return records

    def __contains__(self, content_hash: str) -> bool:
        return self.exists(content_hash)

    def __len__(self) -> int:
        return len(self.keys())


class MemoryStore(ManuscriptStore):
    """In-memory store. Each instance is independent."""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: Dict[str, Manuscript] = {}

    def load(self, content_hash: str) -> Optional[Manuscript]:
        with self._lock:
            manuscript = self._records.get(content_hash)
            return manuscript.snapshot() if manuscript else None

    def save(self, manuscript: Manuscript) -> None:
        with self._lock:
            self._records[manuscript.content_hash] = manuscript.snapshot()

    def discard(self, content_hash: str) -> None:
        with self._lock:
            self._records.pop(content_hash, None)

    def exists(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._records

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._records.keys())


def atomic_write_json(path: Path, data: Dict) -> None:
    """Write JSON to a temp file beside path, then rename into place."""
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class JSONFileStore(ManuscriptStore):
    """
    File-backed store, one JSON document per manuscript.

    File names are digests of the content hash so arbitrary identifiers
    map to safe paths. Writes are atomic per document.
    """

    FORMAT_VERSION = "1.0"

    def __init__(self, store_dir: Path | str):
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._index: Dict[str, Path] = {}
        self._load_index()

    def _path_for(self, content_hash: str) -> Path:
        digest = hashlib.sha3_256(content_hash.encode("utf-8")).hexdigest()
        return self.store_dir / f"{digest}.json"

    def _load_index(self):
        """Scan the store directory for existing documents."""
        for path in sorted(self.store_dir.glob("*.json")):
            try:
                with open(path) as f:
                    data = json.load(f)
                key = data["manuscript"]["content_hash"]
            except (json.JSONDecodeError, KeyError, TypeError) as e:
                logger.warning(f"Skipping unreadable manuscript file {path.name}: {e}")
                continue
            self._index[key] = path
        logger.debug(f"Loaded {len(self._index)} manuscripts from {self.store_dir}")

    def load(self, content_hash: str) -> Optional[Manuscript]:
        with self._lock:
            path = self._index.get(content_hash)
            if path is None:
                return None
            with open(path) as f:
                data = json.load(f)
        return Manuscript.from_dict(data["manuscript"])

    def save(self, manuscript: Manuscript) -> None:
        path = self._path_for(manuscript.content_hash)
        data = {
            "version": self.FORMAT_VERSION,
            "manuscript": manuscript.to_dict(),
        }
        with self._lock:
            atomic_write_json(path, data)
            self._index[manuscript.content_hash] = path

    def discard(self, content_hash: str) -> None:
        with self._lock:
            path = self._index.pop(content_hash, None)
            if path is not None and path.exists():
                path.unlink()

    def exists(self, content_hash: str) -> bool:
        with self._lock:
            return content_hash in self._index

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._index.keys())
