from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from eventhub.core.config import settings
from eventhub.storage.base import StorageAdapter
from eventhub.storage.local import LocalStorageAdapter


def create_storage(root: str | Path | None = None) -> StorageAdapter:
    return LocalStorageAdapter(Path(root or settings.upload_dir), settings.upload_url_prefix)


@lru_cache(maxsize=1)
def get_storage() -> StorageAdapter:
    return create_storage()
