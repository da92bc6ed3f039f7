"""Memory-backed storage."""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ldbstore.storage import (
    FileDesc,
    FileType,
    InvalidFileError,
    Locker,
    LockedError,
    Storage,
    StorageError,
    file_desc_ok,
)

_TYPE_SHIFT = 4

_FILE_OPEN_MESSAGE = "leveldb/storage: file still open"


def _pack(fd: FileDesc) -> int:
    return (fd.num << _TYPE_SHIFT) | int(fd.type)


def _unpack(key: int) -> FileDesc:
    return FileDesc(FileType(key & FileType.ALL), key >> _TYPE_SHIFT)


def _check(fd: FileDesc) -> None:
    if not file_desc_ok(fd):
        raise InvalidFileError()


@dataclass
class _MemFile:
    data: bytearray = field(default_factory=bytearray)
    open: bool = False


class _MemLock(Locker):
    def __init__(self, storage: "MemStorage") -> None:
        self._storage = storage

    def unlock(self) -> None:
        with self._storage._mu:
            if self._storage._slock is self:
                self._storage._slock = None


class _MemReader:
    """Reads a snapshot of a memory file."""

    def __init__(self, storage: "MemStorage", mem_file: _MemFile) -> None:
        self._storage = storage
        self._file = mem_file
        self._buf = io.BytesIO(bytes(mem_file.data))
        self._closed = False

    def read(self, size: int = -1) -> bytes:
        return self._buf.read(size)

    def read_at(self, offset: int, size: int) -> bytes:
        if offset < 0:
            raise ValueError("negative offset")
        self._ensure_open()
        data = self._buf.getbuffer()
        return bytes(data[offset:offset + size])

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        return self._buf.seek(offset, whence)

    def tell(self) -> int:
        return self._buf.tell()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed file")

    def close(self) -> None:
        with self._storage._mu:
            if self._closed:
                return
            self._closed = True
            self._file.open = False
        self._buf.close()

    def __enter__(self) -> "_MemReader":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class _MemWriter:
    """Appends to a memory file."""

    def __init__(self, storage: "MemStorage", mem_file: _MemFile) -> None:
        self._storage = storage
        self._file = mem_file
        self._closed = False

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("I/O operation on closed file")
        self._file.data.extend(data)
        return len(data)

    def sync(self) -> None:
        """Nothing to flush in memory."""

    def close(self) -> None:
        with self._storage._mu:
            if self._closed:
                return
            self._closed = True
            self._file.open = False

    def __enter__(self) -> "_MemWriter":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class MemStorage(Storage):
    """Storage that keeps every file in memory."""

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._slock: Optional[_MemLock] = None
        self._files: Dict[int, _MemFile] = {}
        self._meta = FileDesc()

    def lock(self) -> Locker:
        with self._mu:
            if self._slock is not None:
                raise LockedError()
            self._slock = _MemLock(self)
            return self._slock

    def log(self, text: str) -> None:
        """Logging is discarded."""

    def set_meta(self, fd: FileDesc) -> None:
        _check(fd)
        with self._mu:
            self._meta = fd

    def get_meta(self) -> FileDesc:
        with self._mu:
            if self._meta.is_zero():
                raise FileNotFoundError("no meta recorded")
            return self._meta

    def list(self, file_type: FileType) -> List[FileDesc]:
        with self._mu:
            fds = [_unpack(key) for key in self._files]
        return [fd for fd in fds if fd.type & file_type]

    def open(self, fd: FileDesc) -> _MemReader:
        _check(fd)
        with self._mu:
            mem_file = self._files.get(_pack(fd))
            if mem_file is None:
                raise FileNotFoundError(str(fd))
            if mem_file.open:
                raise StorageError(_FILE_OPEN_MESSAGE)
            mem_file.open = True
            return _MemReader(self, mem_file)

    def create(self, fd: FileDesc) -> _MemWriter:
        _check(fd)
        key = _pack(fd)
        with self._mu:
            mem_file = self._files.get(key)
            if mem_file is not None:
                if mem_file.open:
                    raise StorageError(_FILE_OPEN_MESSAGE)
                mem_file.data.clear()
            else:
                mem_file = _MemFile()
                self._files[key] = mem_file
            mem_file.open = True
            return _MemWriter(self, mem_file)

    def remove(self, fd: FileDesc) -> None:
        _check(fd)
        with self._mu:
            if self._files.pop(_pack(fd), None) is None:
                raise FileNotFoundError(str(fd))

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        _check(old_fd)
        _check(new_fd)
        if old_fd == new_fd:
            return
        old_key, new_key = _pack(old_fd), _pack(new_fd)
        with self._mu:
            old_file = self._files.get(old_key)
            if old_file is None:
                raise FileNotFoundError(str(old_fd))
            new_file = self._files.get(new_key)
            if (new_file is not None and new_file.open) or old_file.open:
                raise StorageError(_FILE_OPEN_MESSAGE)
            del self._files[old_key]
            self._files[new_key] = old_file

    def close(self) -> None:
        """Nothing to release."""