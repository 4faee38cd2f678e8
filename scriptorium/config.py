# scriptorium/config.py
"""
Registry configuration.

Loaded from YAML:

    max_tags_per_call: 10
    max_share_total: 100
    log_level: INFO
    store:
      type: json          # memory | json
      path: ./manuscripts
    provenance:
      enabled: true
      path: ./provenance
      sign: true
      key_path: ./registry.pem
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .provenance import ProvenanceLog, RegistryKey
from .registry import MAX_SHARE_TOTAL, MAX_TAGS_PER_CALL, Registry
from .store import JSONFileStore, ManuscriptStore, MemoryStore

logger = logging.getLogger(__name__)

STORE_TYPES = ("memory", "json")


@dataclass
class RegistryConfig:
    """Settings for building a Registry."""
    max_tags_per_call: int = MAX_TAGS_PER_CALL
    max_share_total: float = MAX_SHARE_TOTAL
    log_level: str = "WARNING"
    store_type: str = "memory"
    store_path: Optional[Path] = None
    provenance_enabled: bool = False
    provenance_path: Optional[Path] = None
    sign_provenance: bool = False
    key_path: Optional[Path] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Path = None) -> "RegistryConfig":
        """Build from parsed YAML. Relative paths resolve against base_dir."""
        data = data or {}
        store = data.get("store", {}) or {}
        provenance = data.get("provenance", {}) or {}

        def _path(value) -> Optional[Path]:
            if not value:
                return None
            path = Path(value)
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            return path

        store_type = store.get("type", "memory")
        if store_type not in STORE_TYPES:
            raise ValueError(f"Unknown store type: {store_type}. Expected one of {STORE_TYPES}")

        return cls(
            max_tags_per_call=int(data.get("max_tags_per_call", MAX_TAGS_PER_CALL)),
            max_share_total=data.get("max_share_total", MAX_SHARE_TOTAL),
            log_level=str(data.get("log_level", "WARNING")).upper(),
            store_type=store_type,
            store_path=_path(store.get("path")),
            provenance_enabled=bool(provenance.get("enabled", False)),
            provenance_path=_path(provenance.get("path")),
            sign_provenance=bool(provenance.get("sign", False)),
            key_path=_path(provenance.get("key_path")),
            raw=data,
        )

    @classmethod
    def from_yaml(cls, yaml_content: str, base_dir: Path = None) -> "RegistryConfig":
        return cls.from_dict(yaml.safe_load(yaml_content), base_dir=base_dir)

    @classmethod
    def from_file(cls, path: Path | str) -> "RegistryConfig":
        """Load config from a YAML file."""
        path = Path(path)
        with open(path, "r") as f:
            return cls.from_yaml(f.read(), base_dir=path.parent)


def build_store(config: RegistryConfig) -> ManuscriptStore:
    if config.store_type == "json":
        if config.store_path is None:
            raise ValueError("store.path is required for a json store")
        return JSONFileStore(config.store_path)
    return MemoryStore()


def build_provenance(config: RegistryConfig) -> Optional[ProvenanceLog]:
    if not config.provenance_enabled:
        return None

    key = None
    if config.sign_provenance:
        if config.key_path is not None and config.key_path.exists():
            key = RegistryKey.load(config.key_path)
        else:
            key = RegistryKey.generate()
            if config.key_path is not None:
                key.save(config.key_path)
                logger.info(f"Generated registry key at {config.key_path}")
    return ProvenanceLog(config.provenance_path, key=key)


def build_registry(config: RegistryConfig = None) -> Registry:
    """Assemble a Registry from configuration."""
    config = config or RegistryConfig()
    return Registry(
        store=build_store(config),
        provenance=build_provenance(config),
        max_tags_per_call=config.max_tags_per_call,
        max_share_total=config.max_share_total,
    )
