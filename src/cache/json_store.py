# src/cache/json_store.py - v1
"""JSON file-based durable store (DURABLE_CACHE_BACKEND=json).

One JSON file per key under the store root.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from galleryai.cache.base_durable_store import BaseDurableStore
from galleryai.cache.models import DurableRecord

logger = logging.getLogger(__name__)


class JsonDurableStore(BaseDurableStore):
    """File-based store using one JSON document per key."""

    def __init__(self, root: Path | str, namespace: str = "ai_analysis_cache") -> None:
        self._root = Path(root).expanduser() / namespace
        self._root.mkdir(parents=True, exist_ok=True)

    async def get(self, key: str) -> DurableRecord | None:
        path = self._entry_path(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return DurableRecord(**data["record"])
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Failed to read durable entry %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any) -> None:
        path = self._entry_path(key)
        record = DurableRecord(value=value)
        payload = {"key": key, "record": record.model_dump(mode="json")}
        path.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")

    async def delete(self, key: str) -> None:
        path = self._entry_path(key)
        if path.exists():
            path.unlink()

    async def keys(self) -> list[str]:
        keys: list[str] = []
        for path in sorted(self._root.glob("*.json")):
            try:
                keys.append(json.loads(path.read_text(encoding="utf-8"))["key"])
            except (OSError, ValueError, KeyError):
                logger.warning("Skipping unreadable durable entry %s", path.name)
        return keys

    def _entry_path(self, key: str) -> Path:
        """Keys contain ':' and '/', so files are named by digest."""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        return self._root / f"{digest}.json"
