"""Storage abstraction: file types, descriptors, errors and the storage interface."""

from __future__ import annotations

import abc
import enum
from dataclasses import dataclass
from typing import Any, List, Union


class FileType(enum.IntFlag):
    """Kinds of files a database keeps; values may be OR'ed for listing."""

    MANIFEST = 1
    JOURNAL = 2
    TABLE = 4
    TEMP = 8

    ALL = MANIFEST | JOURNAL | TABLE | TEMP

    def __str__(self) -> str:
        names = {
            FileType.MANIFEST: "manifest",
            FileType.JOURNAL: "journal",
            FileType.TABLE: "table",
            FileType.TEMP: "temp",
        }
        return names.get(self, f"<unknown:{int(self)}>")


@dataclass(frozen=True)
class FileDesc:
    """Identifies a file by its type and number."""

    type: FileType = FileType(0)
    num: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", FileType(self.type))

    def __str__(self) -> str:
        if self.type == FileType.MANIFEST:
            return f"MANIFEST-{self.num:06d}"
        if self.type == FileType.JOURNAL:
            return f"{self.num:06d}.log"
        if self.type == FileType.TABLE:
            return f"{self.num:06d}.ldb"
        if self.type == FileType.TEMP:
            return f"{self.num:06d}.tmp"
        return f"{int(self.type):#x}-{self.num}"

    def is_zero(self) -> bool:
        """True for the empty descriptor ``FileDesc()``."""
        return self == FileDesc()


_SINGLE_TYPES = (FileType.MANIFEST, FileType.JOURNAL, FileType.TABLE, FileType.TEMP)


def file_desc_ok(fd: FileDesc) -> bool:
    """True if ``fd`` names exactly one known file type and a non-negative number."""
    return fd.type in _SINGLE_TYPES and fd.num >= 0


class StorageError(Exception):
    """Base class of storage errors."""


class InvalidFileError(StorageError):
    """A file descriptor argument is not valid."""

    def __init__(self, message: str = "leveldb/storage: invalid file for argument") -> None:
        super().__init__(message)


class LockedError(StorageError):
    """The storage is already locked."""

    def __init__(self, message: str = "leveldb/storage: already locked") -> None:
        super().__init__(message)


class ClosedError(StorageError):
    """The storage or file is closed."""

    def __init__(self, message: str = "leveldb/storage: closed") -> None:
        super().__init__(message)


class CorruptedError(StorageError):
    """A file's content is corrupted."""

    def __init__(self, err: Union[BaseException, str], fd: FileDesc = FileDesc()) -> None:
        self.err = err
        self.fd = fd
        super().__init__(str(err))

    def __str__(self) -> str:
        if not self.fd.is_zero():
            return f"{self.err} [file={self.fd}]"
        return str(self.err)


class Locker(abc.ABC):
    """A held storage lock."""

    @abc.abstractmethod
    def unlock(self) -> None:
        """Release the lock."""

    def __enter__(self) -> "Locker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.unlock()


class Storage(abc.ABC):
    """A place to keep database files; implementations must be thread safe.

    Readers returned by :meth:`open` support ``read``, ``read_at``, ``seek``,
    ``tell`` and ``close``; writers returned by :meth:`create` support
    ``write``, ``sync`` and ``close``. Both are context managers.
    """

    @abc.abstractmethod
    def lock(self) -> Locker:
        """Lock the storage; raises LockedError while another lock is held."""

    @abc.abstractmethod
    def log(self, text: str) -> None:
        """Record a log line."""

    @abc.abstractmethod
    def set_meta(self, fd: FileDesc) -> None:
        """Atomically record ``fd`` as the current manifest."""

    @abc.abstractmethod
    def get_meta(self) -> FileDesc:
        """Return the recorded manifest; raises FileNotFoundError if none."""

    @abc.abstractmethod
    def list(self, file_type: FileType) -> List[FileDesc]:
        """Return descriptors of files matching any bit of ``file_type``."""

    @abc.abstractmethod
    def open(self, fd: FileDesc) -> Any:
        """Open a file for reading; raises FileNotFoundError if missing."""

    @abc.abstractmethod
    def create(self, fd: FileDesc) -> Any:
        """Create or truncate a file and open it for writing."""

    @abc.abstractmethod
    def remove(self, fd: FileDesc) -> None:
        """Remove a file."""

    @abc.abstractmethod
    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        """Rename a file."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the storage."""

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()