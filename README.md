# ldbstore

The storage layer of a LevelDB-style key/value store, in pure Python. It
depends only on the standard library.

## What is in it

- **`ldbstore.options`**: the frozen dataclasses `Options`, `ReadOptions` and
  `WriteOptions`; the `Compression` enum (`DEFAULT`, `NONE`, `SNAPPY`) and the
  `Strict` flags (`MANIFEST`, `JOURNAL_CHECKSUM`, `JOURNAL`, `BLOCK_CHECKSUM`,
  `COMPACTION`, `READER`, `RECOVERY`, `OVERRIDE`, `ALL`, `DEFAULT`).
  `Options` replaces unset or out-of-range values with the defaults when it is
  built (for example a zero `strict` becomes `Strict.DEFAULT`, and
  `Compression.DEFAULT` becomes `Compression.SNAPPY`). It computes the
  per-level compaction limits with `compaction_table_size`,
  `compaction_total_size`, `compaction_expand_limit`,
  `compaction_gp_overlaps` and `compaction_source_limit`, and answers
  `strict_enabled(flag)`. `get_strict(options, read_options, flag)` combines
  database-wide and per-read strictness; a read carrying `Strict.OVERRIDE`
  decides on its own.
- **`ldbstore.cached_options`**: `CachedOptions` wraps an `Options`, works out
  the compaction limits for levels 0 to 6 once, computes deeper levels on
  demand, and passes every other attribute through to the wrapped options.
- **`ldbstore.storage`**: `FileType` (`MANIFEST`, `JOURNAL`, `TABLE`, `TEMP`,
  `ALL`), `FileDesc` with `is_zero()`, `file_desc_ok`, the abstract `Storage`
  and `Locker` interfaces (both usable as context managers), and the errors
  `StorageError`, `InvalidFileError`, `LockedError`, `ClosedError` and
  `CorruptedError`.
- **`ldbstore.mem_storage`**: `MemStorage`, a `Storage` that keeps every file
  in memory. A file may be open only once at a time; opening it again raises
  `StorageError`. `get_meta` raises `FileNotFoundError` until `set_meta` has
  been called.
- **`ldbstore.file_storage`**: `FileStorage` and `open_file(path, read_only)`,
  a `Storage` backed by a directory, plus the file-name helpers `gen_name`,
  `gen_old_name` and `parse_name`. It holds a lock on the directory's `LOCK`
  file while open, writes `CURRENT` through a pending `CURRENT.<num>` file and
  a rename (keeping `CURRENT.bak`), recovers the newest valid manifest pointer
  in `get_meta`, and appends log lines to `LOG`, moving it to `LOG.old` past
  1 MiB. Opened read-only it refuses `create`, `remove`, `rename` and
  `set_meta`, and writes no log. Tables are also found under the older
  `.sst` name.
- **`ldbstore.counting`**: `CountingStorage` wraps any `Storage` and keeps the
  totals `reads` and `writes` of bytes moved through the files it opens and
  creates.
- **`ldbstore.session_record`**: `SessionRecord`, a manifest record with
  `comparer`, `journal_num`, `prev_journal_num`, `next_file_num` and
  `seq_num` (setting one marks it present, see `has(RecordField...)`),
  compaction pointers and added and deleted tables. `encode()` returns the
  binary form (the previous journal number is not written) and
  `decode(data)` merges an encoded record in, raising
  `ManifestCorruptedError` on malformed input.

## What it does not do

This package is the storage and bookkeeping layer only. It has no key/value
database on top: no memtable, journal or sorted-table reader and writer, no
compaction, caches, filters or comparers, and no command-line tool. The
options describe such a database but nothing here acts on them beyond the
computed limits.

## Installation

```
pip install ldbstore
```

## Example

```python
from ldbstore.file_storage import open_file
from ldbstore.storage import FileDesc, FileType
from ldbstore.session_record import SessionRecord

stor = open_file("/tmp/mydb", False)
lock = stor.lock()

fd = FileDesc(FileType.MANIFEST, 1)
rec = SessionRecord()
rec.comparer = "leveldb.BytewiseComparator"
rec.next_file_num = 2
with stor.create(fd) as w:
    w.write(rec.encode())
stor.set_meta(fd)

assert stor.get_meta() == fd
with stor.open(fd) as r:
    decoded = SessionRecord()
    decoded.decode(r.read())
print(decoded.comparer)

lock.unlock()
stor.close()
```

`MemStorage` offers the same interface without touching the disk, which
makes it handy in tests.

## Running the tests

```
pip install -e ".[test]"
pytest
```