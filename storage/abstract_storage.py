"""Blob store interface for uploaded application documents."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import IO, BinaryIO


class AbstractStorage(ABC):
    """Opaque store keyed by the handle returned from :meth:`save`."""

    @abstractmethod
    def save(self, file_obj: IO[bytes], filename: str, prefix: str | None = None) -> str:
        """Persist a document and return its storage handle."""

    @abstractmethod
    def exists(self, handle: str) -> bool:
        """Return whether a handle refers to a stored document."""

    @abstractmethod
    def open(self, handle: str) -> BinaryIO:
        """Open a stored document for reading."""

    @abstractmethod
    def delete(self, handle: str) -> None:
        """Remove a stored document if present."""
