import pytest

from ldbstore.storage import (
    ClosedError,
    CorruptedError,
    FileDesc,
    FileType,
    InvalidFileError,
    LockedError,
    Storage,
    StorageError,
    file_desc_ok,
)


@pytest.mark.parametrize(
    "ftype, num, name",
    [
        (FileType.JOURNAL, 100, "000100.log"),
        (FileType.JOURNAL, 0, "000000.log"),
        (FileType.TABLE, 0, "000000.ldb"),
        (FileType.MANIFEST, 2, "MANIFEST-000002"),
        (FileType.MANIFEST, 7, "MANIFEST-000007"),
        (FileType.JOURNAL, 9223372036854775807, "9223372036854775807.log"),
        (FileType.TEMP, 100, "000100.tmp"),
    ],
)
def test_file_desc_str(ftype, num, name):
    assert str(FileDesc(ftype, num)) == name


def test_file_type_names():
    assert str(FileType(1)) == "manifest"
    assert str(FileType(2)) == "journal"
    assert str(FileType(4)) == "table"
    assert str(FileType(8)) == "temp"
    assert str(FileType(15)).startswith("<unknown:")


def test_all_covers_every_type():
    assert FileType(1) | FileType(2) | FileType(4) | FileType(8) == FileType.ALL
    assert not file_desc_ok(FileDesc(FileType(15), 1))


def test_type_is_coerced():
    fd = FileDesc(4, 1)
    assert fd.type == FileType.TABLE
    assert str(fd) == "000001.ldb"


def test_zero():
    assert FileDesc().is_zero()
    assert not FileDesc(FileType.TABLE, 0).is_zero()
    assert not FileDesc(FileType(0), 1).is_zero()


def test_equality_and_hashing():
    a = FileDesc(FileType.TABLE, 1)
    assert a == FileDesc(FileType.TABLE, 1)
    assert len({a, FileDesc(FileType.TABLE, 1), FileDesc(FileType.JOURNAL, 1)}) == 2


@pytest.mark.parametrize(
    "fd, ok",
    [
        (FileDesc(FileType.MANIFEST, 1), True),
        (FileDesc(FileType.JOURNAL, 0), True),
        (FileDesc(FileType.TABLE, 5), True),
        (FileDesc(FileType.TEMP, 3), True),
        (FileDesc(FileType.TABLE, -1), False),
        (FileDesc(FileType.ALL, 1), False),
        (FileDesc(FileType(0), 1), False),
    ],
)
def test_file_desc_ok(fd, ok):
    assert file_desc_ok(fd) is ok


def test_error_messages():
    assert str(InvalidFileError()) == "leveldb/storage: invalid file for argument"
    assert str(LockedError()) == "leveldb/storage: already locked"
    assert str(ClosedError()) == "leveldb/storage: closed"


@pytest.mark.parametrize("cls", [InvalidFileError, LockedError, ClosedError])
def test_errors_are_storage_errors(cls):
    err = cls()
    assert isinstance(err, StorageError)
    assert str(err).startswith("leveldb/storage: ")


def test_corrupted_error_message():
    assert str(CorruptedError("bad")) == "bad"
    err = CorruptedError(ValueError("bad"), FileDesc(FileType.TABLE, 7))
    assert str(err) == "bad [file=000007.ldb]"
    assert err.fd == FileDesc(FileType.TABLE, 7)


def test_storage_is_abstract():
    with pytest.raises(TypeError):
        Storage()