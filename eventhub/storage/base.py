from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO


class StorageAdapter(ABC):
    @abstractmethod
    def put_file(self, key: str, fileobj: BinaryIO) -> str:
        """Store content from file-like object under key and return its public URL."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete key if it exists."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Return whether key exists."""

    @abstractmethod
    def resolve_uri(self, key: str) -> str:
        """Return the URL clients use to fetch a key."""
