"""Storage wrapper that counts bytes read and written."""

from __future__ import annotations

import threading
from typing import Any, List

from ldbstore.storage import FileDesc, FileType, Locker, Storage


class _CountingReader:
    def __init__(self, inner: Any, owner: "CountingStorage") -> None:
        self._inner = inner
        self._owner = owner

    def read(self, size: int = -1) -> bytes:
        data = self._inner.read(size)
        self._owner._add_read(len(data))
        return data

    def read_at(self, offset: int, size: int) -> bytes:
        data = self._inner.read_at(offset, size)
        self._owner._add_read(len(data))
        return data

    def __getattr__(self, name: str):
        return getattr(self._inner, name)

    def __enter__(self) -> "_CountingReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self._inner.close()


class _CountingWriter:
    def __init__(self, inner: Any, owner: "CountingStorage") -> None:
        self._inner = inner
        self._owner = owner

    def write(self, data: bytes) -> int:
        written = self._inner.write(data)
        if written is None:
            written = len(data)
        self._owner._add_write(written)
        return written

    def __getattr__(self, name: str):
        return getattr(self._inner, name)

    def __enter__(self) -> "_CountingWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self._inner.close()


class CountingStorage(Storage):
    """Wraps a storage and keeps running totals of bytes read and written."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self._mu = threading.Lock()
        self._read = 0
        self._write = 0

    @property
    def reads(self) -> int:
        """Total bytes read through files opened here."""
        with self._mu:
            return self._read

    @property
    def writes(self) -> int:
        """Total bytes written through files created here."""
        with self._mu:
            return self._write

    def _add_read(self, n: int) -> None:
        with self._mu:
            self._read += n

    def _add_write(self, n: int) -> None:
        with self._mu:
            self._write += n

    def open(self, fd: FileDesc) -> _CountingReader:
        return _CountingReader(self.storage.open(fd), self)

    def create(self, fd: FileDesc) -> _CountingWriter:
        return _CountingWriter(self.storage.create(fd), self)

    def lock(self) -> Locker:
        return self.storage.lock()

    def log(self, text: str) -> None:
        self.storage.log(text)

    def set_meta(self, fd: FileDesc) -> None:
        self.storage.set_meta(fd)

    def get_meta(self) -> FileDesc:
        return self.storage.get_meta()

    def list(self, file_type: FileType) -> List[FileDesc]:
        return self.storage.list(file_type)

    def remove(self, fd: FileDesc) -> None:
        self.storage.remove(fd)

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        self.storage.rename(old_fd, new_fd)

    def close(self) -> None:
        self.storage.close()