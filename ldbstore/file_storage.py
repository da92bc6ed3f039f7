"""File-system backed storage."""

from __future__ import annotations

import datetime
import errno
import os
import re
import stat
import threading
import weakref
from typing import List, Optional, Tuple, Union

try:
    import fcntl
except ImportError:  # pragma: no cover - non-POSIX platforms
    fcntl = None  # type: ignore[assignment]

try:
    import msvcrt
except ImportError:
    msvcrt = None  # type: ignore[assignment]

from ldbstore.storage import (
    ClosedError,
    CorruptedError,
    FileDesc,
    FileType,
    InvalidFileError,
    Locker,
    LockedError,
    Storage,
    StorageError,
    file_desc_ok,
)

LOG_SIZE_THRESHOLD = 1024 * 1024

_READ_ONLY_MESSAGE = "leveldb/storage: storage is read-only"
_CORRUPTED_CURRENT_MESSAGE = "leveldb/storage: corrupted or incomplete CURRENT file"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_NUMBERED_RE = re.compile(r"\s*([+-]?\d+)\.\s*(\S+)", re.ASCII)
_MANIFEST_RE = re.compile(r"MANIFEST-\s*([+-]?\d+)\s*", re.ASCII)
_PENDING_NUM_RE = re.compile(r"[+-]?\d+", re.ASCII)

_TAIL_TYPES = {
    "log": FileType.JOURNAL,
    "ldb": FileType.TABLE,
    "sst": FileType.TABLE,
    "tmp": FileType.TEMP,
}

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def gen_name(fd: FileDesc) -> str:
    """Return the on-disk file name for ``fd``."""
    if fd.type == FileType.MANIFEST:
        return f"MANIFEST-{fd.num:06d}"
    if fd.type == FileType.JOURNAL:
        return f"{fd.num:06d}.log"
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.ldb"
    if fd.type == FileType.TEMP:
        return f"{fd.num:06d}.tmp"
    raise ValueError("invalid file type")


def _has_old_name(fd: FileDesc) -> bool:
    return fd.type == FileType.TABLE


def gen_old_name(fd: FileDesc) -> str:
    """Return the legacy file name for ``fd``; tables used the ``.sst`` suffix."""
    if fd.type == FileType.TABLE:
        return f"{fd.num:06d}.sst"
    return gen_name(fd)


def _int64(text: str) -> Optional[int]:
    value = int(text)
    if _INT64_MIN <= value <= _INT64_MAX:
        return value
    return None


def parse_name(name: str) -> Optional[FileDesc]:
    """Parse a database file name; return None if it is not one."""
    match = _NUMBERED_RE.match(name)
    if match is not None:
        num = _int64(match.group(1))
        if num is not None:
            file_type = _TAIL_TYPES.get(match.group(2))
            if file_type is None:
                return None
            return FileDesc(file_type, num)
    match = _MANIFEST_RE.fullmatch(name)
    if match is not None:
        num = _int64(match.group(1))
        if num is not None:
            return FileDesc(FileType.MANIFEST, num)
    return None


def _rename(old_path: str, new_path: str) -> None:
    os.replace(old_path, new_path)


def _sync_dir(path: str) -> None:
    if os.name == "nt":
        return
    dir_fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    except OSError as exc:
        if exc.errno != errno.EINVAL:
            raise
    finally:
        os.close(dir_fd)


def _write_file_synced(filename: str, data: bytes) -> None:
    flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC | getattr(os, "O_BINARY", 0)
    handle = os.open(filename, flags, 0o644)
    with os.fdopen(handle, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())


class _FileLock:
    """Process-level lock on the storage's LOCK file."""

    def __init__(self, path: str, read_only: bool) -> None:
        flags = (os.O_RDONLY if read_only else os.O_RDWR) | getattr(os, "O_BINARY", 0)
        try:
            handle = os.open(path, flags)
        except FileNotFoundError:
            handle = os.open(path, flags | os.O_CREAT, 0o644)
        self._exclusive = False
        try:
            if fcntl is not None:
                how = fcntl.LOCK_SH if read_only else fcntl.LOCK_EX
                fcntl.flock(handle, how | fcntl.LOCK_NB)
            elif msvcrt is not None and not read_only:
                msvcrt.locking(handle, msvcrt.LK_NBLCK, 1)
                self._exclusive = True
        except BaseException:
            os.close(handle)
            raise
        self._handle = handle

    def release(self) -> None:
        if fcntl is not None:
            fcntl.flock(self._handle, fcntl.LOCK_UN | fcntl.LOCK_NB)
        elif msvcrt is not None and self._exclusive:
            os.lseek(self._handle, 0, os.SEEK_SET)
            msvcrt.locking(self._handle, msvcrt.LK_UNLCK, 1)
        os.close(self._handle)


class _StorageLock(Locker):
    def __init__(self, storage: Optional["FileStorage"]) -> None:
        self._storage = storage

    def unlock(self) -> None:
        storage = self._storage
        if storage is None:
            return
        with storage._mu:
            if storage._slock is self:
                storage._slock = None


class _FileWrap:
    """Common bookkeeping for files handed out by a FileStorage."""

    def __init__(self, storage: "FileStorage", fd: FileDesc, file_obj) -> None:
        self._fs = storage
        self.fd = fd
        self._file = file_obj
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._fs._mu:
            if self._closed:
                raise ClosedError()
            self._closed = True
            self._fs._open -= 1
            try:
                self._file.close()
            except OSError as exc:
                self._fs._log(f"close {self.fd}: {exc}")
                raise

    def __enter__(self):
        return self

    def __exit__(self, *exc_info) -> None:
        if not self._closed:
            self.close()


class _FileReader(_FileWrap):
    """Read-only file handle."""

    def __init__(self, storage: "FileStorage", fd: FileDesc, file_obj) -> None:
        super().__init__(storage, fd, file_obj)
        self._io_lock = threading.Lock()

    def read(self, size: int = -1) -> bytes:
        return self._file.read(size)

    def read_at(self, offset: int, size: int) -> bytes:
        if offset < 0:
            raise ValueError("negative offset")
        if hasattr(os, "pread"):
            chunks = []
            while size > 0:
                chunk = os.pread(self._file.fileno(), size, offset)
                if not chunk:
                    break
                chunks.append(chunk)
                size -= len(chunk)
                offset += len(chunk)
            return b"".join(chunks)
        with self._io_lock:
            pos = self._file.tell()
            try:
                self._file.seek(offset)
                return self._file.read(size)
            finally:
                self._file.seek(pos)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self._file.seek(offset, whence)

    def tell(self) -> int:
        return self._file.tell()


class _FileWriter(_FileWrap):
    """Write-only file handle."""

    def write(self, data: bytes) -> int:
        view = memoryview(data)
        total = len(view)
        while view:
            written = self._file.write(view)
            view = view[written:]
        return total

    def sync(self) -> None:
        os.fsync(self._file.fileno())
        if self.fd.type == FileType.MANIFEST:
            try:
                _sync_dir(self._fs.path)
            except OSError as exc:
                self._fs.log(f"syncDir: {exc}")
                raise


def _check_fd(fd: FileDesc) -> None:
    if not file_desc_ok(fd):
        raise InvalidFileError()


class FileStorage(Storage):
    """Storage backed by a directory; holds a file lock while open."""

    def __init__(self, path: Union[str, os.PathLike], read_only: bool = False) -> None:
        path = os.fspath(path)
        try:
            st = os.stat(path)
        except FileNotFoundError:
            if read_only:
                raise
            os.makedirs(path, 0o755, exist_ok=True)
        else:
            if not stat.S_ISDIR(st.st_mode):
                raise NotADirectoryError(f"leveldb/storage: open {path}: not a directory")

        flock = _FileLock(os.path.join(path, "LOCK"), read_only)
        logw = None
        log_size = 0
        if not read_only:
            try:
                logw = open(os.path.join(path, "LOG"), "ab", buffering=0)
                log_size = logw.seek(0, os.SEEK_END)
            except BaseException as exc:
                if logw is not None:
                    logw.close()
                try:
                    flock.release()
                except OSError as ferr:
                    raise OSError(f"error opening file ({exc}); error unlocking file ({ferr})") from exc
                raise

        self._path = path
        self._read_only = read_only
        self._mu = threading.Lock()
        self._flock = flock
        self._slock: Optional[_StorageLock] = None
        self._logw = logw
        self._log_size = log_size
        self._open = 0
        self._closed = False
        self._day = 0
        self._finalizer = weakref.finalize(self, flock.release)

    @property
    def path(self) -> str:
        return self._path

    @property
    def read_only(self) -> bool:
        return self._read_only

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedError()

    def _join(self, name: str) -> str:
        return os.path.join(self._path, name)

    def lock(self) -> Locker:
        with self._mu:
            self._ensure_open()
            if self._read_only:
                return _StorageLock(None)
            if self._slock is not None:
                raise LockedError()
            self._slock = _StorageLock(self)
            return self._slock

    # Logging.

    def _print_day(self, t: datetime.datetime) -> None:
        if self._day == t.day:
            return
        self._day = t.day
        header = f"=============== {_MONTHS[t.month - 1]} {t.day}, {t.year} ({t.tzname()}) ===============\n"
        self._logw.write(header.encode("utf-8"))

    def _do_log(self, t: datetime.datetime, text: str) -> None:
        if self._log_size > LOG_SIZE_THRESHOLD:
            if self._logw is not None:
                self._logw.close()
            self._logw = None
            self._log_size = 0
            try:
                _rename(self._join("LOG"), self._join("LOG.old"))
            except OSError:
                return
        if self._logw is None:
            try:
                self._logw = open(self._join("LOG"), "ab", buffering=0)
            except OSError:
                return
            self._day = 0
        try:
            self._print_day(t)
        except OSError:
            return
        line = f"{t.hour:02d}:{t.minute:02d}:{t.second:02d}.{t.microsecond:06d} {text}\n"
        try:
            written = self._logw.write(line.encode("utf-8"))
        except OSError:
            return
        self._log_size += written or 0

    def log(self, text: str) -> None:
        if self._read_only:
            return
        t = datetime.datetime.now().astimezone()
        with self._mu:
            if self._closed:
                return
            self._do_log(t, text)

    def _log(self, text: str) -> None:
        """Log while already holding the storage mutex."""
        if not self._read_only:
            self._do_log(datetime.datetime.now().astimezone(), text)

    # Meta.

    def _set_meta(self, fd: FileDesc) -> None:
        content = (gen_name(fd) + "\n").encode("utf-8")
        current_path = self._join("CURRENT")
        try:
            with open(current_path, "rb") as f:
                old = f.read()
        except FileNotFoundError:
            pass
        except OSError as exc:
            self._log(f"backup CURRENT: {exc}")
            raise
        else:
            if old == content:
                return
            try:
                _write_file_synced(current_path + ".bak", old)
            except OSError as exc:
                self._log(f"backup CURRENT: {exc}")
                raise
        pending_path = f"{current_path}.{fd.num}"
        try:
            _write_file_synced(pending_path, content)
        except OSError as exc:
            self._log(f"create CURRENT.{fd.num}: {exc}")
            raise
        try:
            _rename(pending_path, current_path)
        except OSError as exc:
            self._log(f"rename CURRENT.{fd.num}: {exc}")
            raise
        try:
            _sync_dir(self._path)
        except OSError as exc:
            self._log(f"syncDir: {exc}")
            raise

    def set_meta(self, fd: FileDesc) -> None:
        _check_fd(fd)
        if self._read_only:
            raise StorageError(_READ_ONLY_MESSAGE)
        with self._mu:
            self._ensure_open()
            self._set_meta(fd)

    def _try_current(self, name: str) -> Tuple[str, FileDesc]:
        with open(self._join(name), "rb") as f:
            data = f.read()
        text = data.decode("latin-1")
        fd = parse_name(text[:-1]) if text.endswith("\n") else None
        if fd is None:
            self._log(f"{name}: corrupted content: {data!r}")
            raise CorruptedError(_CORRUPTED_CURRENT_MESSAGE)
        try:
            os.stat(self._join(gen_name(fd)))
        except FileNotFoundError:
            self._log(f"{name}: missing target file: {fd}")
            raise
        return name, fd

    def _try_currents(self, names: List[str]):
        last_corrupted: Optional[CorruptedError] = None
        for name in names:
            try:
                return self._try_current(name), None
            except FileNotFoundError:
                continue
            except CorruptedError as exc:
                last_corrupted = exc
        if last_corrupted is not None:
            return None, last_corrupted
        return None, FileNotFoundError("no valid CURRENT file")

    def get_meta(self) -> FileDesc:
        with self._mu:
            self._ensure_open()
            names = os.listdir(self._path)

            nums = [
                int(name[8:])
                for name in names
                if name.startswith("CURRENT.")
                and name != "CURRENT.bak"
                and _PENDING_NUM_RE.fullmatch(name[8:])
                and _INT64_MIN <= int(name[8:]) <= _INT64_MAX
            ]
            nums.sort(reverse=True)
            pend_names = [f"CURRENT.{num}" for num in nums]

            pend_cur = None
            pend_err: Optional[Exception] = FileNotFoundError("no pending CURRENT file")
            if pend_names:
                pend_cur, pend_err = self._try_currents(pend_names)

            cur, cur_err = self._try_currents(["CURRENT", "CURRENT.bak"])

            if pend_cur is not None and (cur is None or pend_cur[1].num > cur[1].num):
                cur = pend_cur

            if cur is not None:
                name, fd = cur
                if not self._read_only and (name != "CURRENT" or pend_names):
                    try:
                        self._set_meta(fd)
                    except OSError:
                        pass
                    else:
                        for pending in pend_names:
                            try:
                                os.remove(self._join(pending))
                            except OSError as exc:
                                self._log(f"remove {pending}: {exc}")
                return fd

            if isinstance(pend_err, CorruptedError):
                raise pend_err
            raise cur_err

    # Files.

    def list(self, file_type: FileType) -> List[FileDesc]:
        with self._mu:
            self._ensure_open()
            names = os.listdir(self._path)
        fds = (parse_name(name) for name in names)
        return [fd for fd in fds if fd is not None and fd.type & file_type]

    def open(self, fd: FileDesc) -> _FileReader:
        _check_fd(fd)
        with self._mu:
            self._ensure_open()
            try:
                file_obj = open(self._join(gen_name(fd)), "rb", buffering=0)
            except FileNotFoundError:
                if not _has_old_name(fd):
                    raise
                file_obj = open(self._join(gen_old_name(fd)), "rb", buffering=0)
            self._open += 1
            return _FileReader(self, fd, file_obj)

    def create(self, fd: FileDesc) -> _FileWriter:
        _check_fd(fd)
        if self._read_only:
            raise StorageError(_READ_ONLY_MESSAGE)
        with self._mu:
            self._ensure_open()
            file_obj = open(self._join(gen_name(fd)), "wb", buffering=0)
            self._open += 1
            return _FileWriter(self, fd, file_obj)

    def remove(self, fd: FileDesc) -> None:
        _check_fd(fd)
        if self._read_only:
            raise StorageError(_READ_ONLY_MESSAGE)
        with self._mu:
            self._ensure_open()
            try:
                os.remove(self._join(gen_name(fd)))
            except FileNotFoundError as exc:
                if not _has_old_name(fd):
                    self._log(f"remove {fd}: {exc}")
                    raise
                try:
                    os.remove(self._join(gen_old_name(fd)))
                except FileNotFoundError:
                    raise exc from None
                except OSError:
                    self._log(f"remove {fd}: {exc} (old name)")
                    raise
            except OSError as exc:
                self._log(f"remove {fd}: {exc}")
                raise

    def rename(self, old_fd: FileDesc, new_fd: FileDesc) -> None:
        _check_fd(old_fd)
        _check_fd(new_fd)
        if old_fd == new_fd:
            return
        if self._read_only:
            raise StorageError(_READ_ONLY_MESSAGE)
        with self._mu:
            self._ensure_open()
            _rename(self._join(gen_name(old_fd)), self._join(gen_name(new_fd)))

    def close(self) -> None:
        with self._mu:
            self._ensure_open()
            if self._open > 0:
                self._log(f"close: warning, {self._open} files still open")
            self._closed = True
            if self._logw is not None:
                self._logw.close()
                self._logw = None
            self._finalizer.detach()
            self._flock.release()


def open_file(path: Union[str, os.PathLike], read_only: bool) -> FileStorage:
    """Open (creating if allowed) a directory-backed storage and lock it."""
    return FileStorage(path, read_only)