"""Persisted settings and payload text.

The store keeps two string entries in a key-value storage backend: the
JSON-encoded Config and the raw payload text. Loading is corruption
tolerant: anything unreadable falls back to defaults, field by field.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from hyperlocal_demo.core.interfaces import KeyValueStorage
from hyperlocal_demo.schemas import Config, Environment
from hyperlocal_demo.utils.config import (
    CONFIG_STORAGE_KEY,
    MOCK_LATITUDE,
    MOCK_LONGITUDE,
    PAYLOAD_STORAGE_KEY,
)

logger = logging.getLogger(__name__)


PAYLOAD_TEMPLATE: str = json.dumps(
    {
        "mock": False,
        "locationId": "your-location-id",
        "environment": int(Environment.PROD_PUBLIC),
        "lat": MOCK_LATITUDE,
        "lng": MOCK_LONGITUDE,
        "images": [
            "https://example.com/frames/frame-001.jpg",
        ],
    },
    indent=2,
)


# =============================================================================
# Storage Backends
# =============================================================================


class InMemoryStorage(KeyValueStorage):
    """Process-local storage, used by tests and throwaway runs."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value


class JsonFileStorage(KeyValueStorage):
    """Key-value storage backed by a single JSON object file.

    Writes go to a temporary file that is then renamed over the target,
    so a crash mid-write never leaves a truncated file behind. A file that
    cannot be read or decoded is treated as empty.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the file storage.

        Args:
            path: Location of the JSON file. Created on first write.
        """
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(f"[STORAGE] Ignoring unreadable storage file {self._path}: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"[STORAGE] Ignoring storage file {self._path}: not a JSON object")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def get(self, key: str) -> str | None:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)


# =============================================================================
# Config Store
# =============================================================================


def _overlay_defaults(data: dict[str, Any]) -> Config:
    """Merge a stored (possibly partial or damaged) object onto defaults.

    Unknown keys are dropped, and any field whose stored value does not
    validate keeps its default while the remaining fields are kept.
    """
    defaults = Config().to_storage_dict()
    merged = dict(defaults)
    for key, value in data.items():
        if key not in defaults:
            continue
        # Older files stored coordinates as numbers
        if key in ("latitude", "longitude") and isinstance(value, (int, float)) \
                and not isinstance(value, bool):
            value = str(value)
        merged[key] = value

    try:
        return Config.model_validate(merged)
    except ValidationError as exc:
        alias_of = {name: field.alias or name for name, field in Config.model_fields.items()}
        invalid = {
            alias_of.get(str(err["loc"][0]), str(err["loc"][0]))
            for err in exc.errors()
            if err["loc"]
        }
        logger.warning(f"[STORAGE] Resetting invalid config fields to defaults: {sorted(invalid)}")
        for key in invalid:
            if key in defaults:
                merged[key] = defaults[key]

    try:
        return Config.model_validate(merged)
    except ValidationError:
        logger.warning("[STORAGE] Stored config unusable, using defaults")
        return Config()


class ConfigStore:
    """Loads and persists the user Config and the raw payload text.

    Constructed once per process and injected into the workflow
    controller, which writes through on every change.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        config_key: str = CONFIG_STORAGE_KEY,
        payload_key: str = PAYLOAD_STORAGE_KEY,
    ) -> None:
        """Initialize the store.

        Args:
            storage: Durable key-value backend.
            config_key: Key for the JSON-encoded Config.
            payload_key: Key for the raw payload text.
        """
        self._storage = storage
        self._config_key = config_key
        self._payload_key = payload_key

    def _read(self, key: str) -> str | None:
        try:
            return self._storage.get(key)
        except Exception as e:
            logger.warning(f"[STORAGE] Read of '{key}' failed: {e}")
            return None

    def _write(self, key: str, value: str) -> None:
        try:
            self._storage.set(key, value)
        except Exception as e:
            logger.warning(f"[STORAGE] Write of '{key}' failed: {e}")

    def load(self) -> Config:
        """Load the persisted Config, applying defaults.

        Never raises: unreadable, undecodable or non-object values yield
        the default Config, and partial objects are merged onto it.
        """
        raw = self._read(self._config_key)
        if raw is None:
            return Config()
        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.warning(f"[STORAGE] Stored config is not valid JSON, using defaults: {e}")
            return Config()
        if not isinstance(data, dict):
            logger.warning("[STORAGE] Stored config is not an object, using defaults")
            return Config()
        return _overlay_defaults(data)

    def save(self, config: Config) -> None:
        """Persist the full Config (best effort)."""
        self._write(self._config_key, json.dumps(config.to_storage_dict()))
        logger.debug(f"[STORAGE] Saved config: {config.to_storage_dict()}")

    def load_payload_text(self) -> str:
        """Return the persisted payload text, or the template if none is stored."""
        text = self._read(self._payload_key)
        return PAYLOAD_TEMPLATE if text is None else text

    def save_payload_text(self, text: str) -> None:
        """Persist the payload text verbatim (best effort)."""
        self._write(self._payload_key, text)
        logger.debug(f"[STORAGE] Saved payload text ({len(text)} chars)")
