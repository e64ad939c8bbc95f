"""Local filesystem document store."""

from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import IO, BinaryIO

from flask import current_app
from werkzeug.exceptions import NotFound
from werkzeug.utils import secure_filename

from config import Config

from .abstract_storage import AbstractStorage


class LocalStorage(AbstractStorage):
    """Persist documents under the configured upload directory.

    Handles are ``<application id>/<random hex><suffix>`` paths relative to
    the base directory; the original filename is only kept on the upload row.
    """

    def __init__(self, upload_dir: str | None = None):
        self.base_directory = Path(upload_dir or Config.UPLOAD_DIR)
        os.makedirs(self.base_directory, exist_ok=True)

    @classmethod
    def from_app(cls) -> "LocalStorage":
        return cls(current_app.config.get("UPLOAD_DIR"))

    def _resolve(self, handle: str) -> Path:
        path = (self.base_directory / handle).resolve()
        if self.base_directory.resolve() not in path.parents:
            raise NotFound("Stored document could not be found.")
        return path

    def save(self, file_obj: IO[bytes], filename: str, prefix: str | None = None) -> str:
        """Save a document under a generated name and return its handle."""

        safe_name = secure_filename(filename)
        if not safe_name:
            raise ValueError("Filename must contain at least one valid character.")

        directory = self.base_directory / secure_filename(prefix) if prefix else self.base_directory
        os.makedirs(directory, exist_ok=True)
        destination = directory / f"{uuid.uuid4().hex}{Path(safe_name).suffix.lower()}"
        if hasattr(file_obj, "save"):
            file_obj.save(destination)  # type: ignore[arg-type]
        else:
            with open(destination, "wb") as output:
                output.write(file_obj.read())

        return destination.relative_to(self.base_directory).as_posix()

    def exists(self, handle: str) -> bool:
        return self._resolve(handle).exists()

    def open(self, handle: str) -> BinaryIO:
        path = self._resolve(handle)
        if not path.exists():
            raise NotFound("Stored document could not be found.")
        return open(path, "rb")

    def delete(self, handle: str) -> None:
        path = self._resolve(handle)
        if path.exists():
            path.unlink()
