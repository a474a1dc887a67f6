"""
Storage backend abstractions for raw dataset files.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import BinaryIO, Protocol

from db.repositories.errors import FileStorageError


class FileStorageBackend(Protocol):
    """
    Read-side storage contract consumed by the statistical analyzer.
    """

    def exists(self, storage_path: str) -> bool:
        ...

    def open_read_stream(self, storage_path: str) -> BinaryIO:
        ...

    def size(self, storage_path: str) -> int | None:
        ...


def _sanitize_file_name(file_name: str) -> str:
    safe_name = Path(file_name).name.strip()
    if not safe_name:
        raise FileStorageError("Invalid file name.")
    return safe_name


class LocalFileStorage:
    """
    Local filesystem storage backend rooted at one directory.

    Storage paths are always relative to the root; anything resolving outside
    of it is rejected.
    """

    def __init__(self, root_dir: str | Path = "data/datasets") -> None:
        self._root_dir = Path(root_dir)

    def save(self, *, owner_id: uuid.UUID, file_name: str, content: bytes) -> str:
        """
        Write one dataset file and return its storage path.

        Upload-side helper: the audit pipeline only reads. Uploads happen in
        the dataset service, and the test fixtures use this to seed files.
        """

        safe_file_name = _sanitize_file_name(file_name)
        relative_path = Path(str(owner_id)) / f"{uuid.uuid4().hex}_{safe_file_name}"
        absolute_path = self._root_dir / relative_path
        absolute_path.parent.mkdir(parents=True, exist_ok=True)

        tmp_path = absolute_path.with_suffix(f"{absolute_path.suffix}.tmp")
        try:
            with tmp_path.open("wb") as handle:
                handle.write(content)
            tmp_path.replace(absolute_path)
        except OSError as exc:
            raise FileStorageError("Failed to write dataset file to storage.") from exc
        finally:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass

        return relative_path.as_posix()

    def exists(self, storage_path: str) -> bool:
        return self._resolve(storage_path).is_file()

    def open_read_stream(self, storage_path: str) -> BinaryIO:
        target = self._resolve(storage_path)
        try:
            return target.open("rb")
        except OSError as exc:
            raise FileStorageError(f"Failed to open dataset file: {storage_path}") from exc

    def size(self, storage_path: str) -> int | None:
        try:
            return self._resolve(storage_path).stat().st_size
        except OSError:
            return None

    def _resolve(self, storage_path: str) -> Path:
        root = self._root_dir.resolve()
        target = (root / Path(storage_path)).resolve()
        if root != target and root not in target.parents:
            raise FileStorageError(f"Storage path escapes the storage root: {storage_path}")
        return target
