"""Manifest session records and their binary encoding."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional

from ldbstore.storage import CorruptedError, FileDesc

_MAX_VARINT_LEN64 = 10
_OVERFLOW = "binary: varint overflows a 64-bit integer"
_INT64_LIMIT = 1 << 63
_UINT64_LIMIT = 1 << 64


class RecordField(enum.IntEnum):
    """Tags of record fields; these are written to disk and must not change."""

    COMPARER = 1
    JOURNAL_NUM = 2
    NEXT_FILE_NUM = 3
    SEQ_NUM = 4
    COMP_PTR = 5
    DEL_TABLE = 6
    ADD_TABLE = 7
    # 8 was used for large value refs
    PREV_JOURNAL_NUM = 9


class ManifestCorruptedError(CorruptedError):
    """A manifest record field could not be decoded."""

    def __init__(self, field: str, reason: str, fd: FileDesc = FileDesc()) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"leveldb: manifest corrupted (field '{field}'): {reason}", fd)


@dataclass(frozen=True)
class CompPtr:
    """Compaction pointer for a level."""

    level: int
    ikey: bytes


@dataclass(frozen=True)
class AddedTable:
    """A table added to a level."""

    level: int
    num: int
    size: int
    imin: bytes
    imax: bytes


@dataclass(frozen=True)
class DeletedTable:
    """A table removed from a level."""

    level: int
    num: int


def _put_uvarint(out: bytearray, x: int) -> None:
    if not 0 <= x < _UINT64_LIMIT:
        raise ValueError("value out of unsigned 64-bit range")
    while x >= 0x80:
        out.append((x & 0x7F) | 0x80)
        x >>= 7
    out.append(x)


def _put_varint(out: bytearray, x: int) -> None:
    if x < 0:
        raise ValueError("invalid negative value")
    if x >= _INT64_LIMIT:
        raise ValueError("value out of signed 64-bit range")
    _put_uvarint(out, x)


def _put_bytes(out: bytearray, data: bytes) -> None:
    _put_uvarint(out, len(data))
    out.extend(data)


class _Decoder:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def uvarint(self, field: str, may_eof: bool = False) -> Optional[int]:
        x = 0
        shift = 0
        for i in range(_MAX_VARINT_LEN64):
            if self._pos >= len(self._data):
                if i == 0 and may_eof:
                    return None
                raise ManifestCorruptedError(field, "short read")
            b = self._data[self._pos]
            self._pos += 1
            if b < 0x80:
                if i == _MAX_VARINT_LEN64 - 1 and b > 1:
                    raise ManifestCorruptedError(field, _OVERFLOW)
                return x | (b << shift)
            x |= (b & 0x7F) << shift
            shift += 7
        raise ManifestCorruptedError(field, _OVERFLOW)

    def varint(self, field: str) -> int:
        x = self.uvarint(field)
        if x >= _INT64_LIMIT:
            raise ManifestCorruptedError(field, "invalid negative value")
        return x

    def raw(self, field: str) -> bytes:
        n = self.uvarint(field)
        end = self._pos + n
        if end > len(self._data):
            raise ManifestCorruptedError(field, "short read")
        data = self._data[self._pos:end]
        self._pos = end
        return data


class SessionRecord:
    """A set of changes to the database state, as stored in the manifest.

    Assigning one of the scalar fields marks it as present.
    """

    def __init__(self) -> None:
        self._present = 0
        self._comparer = ""
        self._journal_num = 0
        self._prev_journal_num = 0
        self._next_file_num = 0
        self._seq_num = 0
        self.comp_ptrs: List[CompPtr] = []
        self.added_tables: List[AddedTable] = []
        self.deleted_tables: List[DeletedTable] = []

    def _mark(self, field: RecordField) -> None:
        self._present |= 1 << int(field)

    def _unmark(self, field: RecordField) -> None:
        self._present &= ~(1 << int(field))

    def has(self, field: RecordField) -> bool:
        """Whether ``field`` has been set."""
        return bool(self._present & (1 << int(field)))

    @property
    def comparer(self) -> str:
        return self._comparer

    @comparer.setter
    def comparer(self, name: str) -> None:
        self._mark(RecordField.COMPARER)
        self._comparer = name

    @property
    def journal_num(self) -> int:
        return self._journal_num

    @journal_num.setter
    def journal_num(self, num: int) -> None:
        self._mark(RecordField.JOURNAL_NUM)
        self._journal_num = num

    @property
    def prev_journal_num(self) -> int:
        return self._prev_journal_num

    @prev_journal_num.setter
    def prev_journal_num(self, num: int) -> None:
        self._mark(RecordField.PREV_JOURNAL_NUM)
        self._prev_journal_num = num

    @property
    def next_file_num(self) -> int:
        return self._next_file_num

    @next_file_num.setter
    def next_file_num(self, num: int) -> None:
        self._mark(RecordField.NEXT_FILE_NUM)
        self._next_file_num = num

    @property
    def seq_num(self) -> int:
        return self._seq_num

    @seq_num.setter
    def seq_num(self, num: int) -> None:
        self._mark(RecordField.SEQ_NUM)
        self._seq_num = num

    def add_comp_ptr(self, level: int, ikey: bytes) -> None:
        """Record a compaction pointer."""
        self._mark(RecordField.COMP_PTR)
        self.comp_ptrs.append(CompPtr(level, bytes(ikey)))

    def reset_comp_ptrs(self) -> None:
        self._unmark(RecordField.COMP_PTR)
        self.comp_ptrs.clear()

    def add_table(self, level: int, num: int, size: int, imin: bytes, imax: bytes) -> None:
        """Record a table added to ``level``."""
        self._mark(RecordField.ADD_TABLE)
        self.added_tables.append(AddedTable(level, num, size, bytes(imin), bytes(imax)))

    def reset_added_tables(self) -> None:
        self._unmark(RecordField.ADD_TABLE)
        self.added_tables.clear()

    def del_table(self, level: int, num: int) -> None:
        """Record a table deleted from ``level``."""
        self._mark(RecordField.DEL_TABLE)
        self.deleted_tables.append(DeletedTable(level, num))

    def reset_deleted_tables(self) -> None:
        self._unmark(RecordField.DEL_TABLE)
        self.deleted_tables.clear()

    def encode(self) -> bytes:
        """Serialise the record; the previous journal number is not written."""
        out = bytearray()
        if self.has(RecordField.COMPARER):
            _put_uvarint(out, RecordField.COMPARER)
            _put_bytes(out, self._comparer.encode("utf-8", "surrogateescape"))
        if self.has(RecordField.JOURNAL_NUM):
            _put_uvarint(out, RecordField.JOURNAL_NUM)
            _put_varint(out, self._journal_num)
        if self.has(RecordField.NEXT_FILE_NUM):
            _put_uvarint(out, RecordField.NEXT_FILE_NUM)
            _put_varint(out, self._next_file_num)
        if self.has(RecordField.SEQ_NUM):
            _put_uvarint(out, RecordField.SEQ_NUM)
            _put_uvarint(out, self._seq_num)
        for ptr in self.comp_ptrs:
            _put_uvarint(out, RecordField.COMP_PTR)
            _put_uvarint(out, ptr.level)
            _put_bytes(out, ptr.ikey)
        for deleted in self.deleted_tables:
            _put_uvarint(out, RecordField.DEL_TABLE)
            _put_uvarint(out, deleted.level)
            _put_varint(out, deleted.num)
        for added in self.added_tables:
            _put_uvarint(out, RecordField.ADD_TABLE)
            _put_uvarint(out, added.level)
            _put_varint(out, added.num)
            _put_varint(out, added.size)
            _put_bytes(out, added.imin)
            _put_bytes(out, added.imax)
        return bytes(out)

    def decode(self, data: bytes) -> None:
        """Merge the fields encoded in ``data`` into this record.

        Unknown field tags are skipped. Raises ManifestCorruptedError on
        malformed input.
        """
        dec = _Decoder(bytes(data))
        while True:
            tag = dec.uvarint("field-header", may_eof=True)
            if tag is None:
                return
            if tag == RecordField.COMPARER:
                self.comparer = dec.raw("comparer").decode("utf-8", "surrogateescape")
            elif tag == RecordField.JOURNAL_NUM:
                self.journal_num = dec.varint("journal-num")
            elif tag == RecordField.PREV_JOURNAL_NUM:
                self.prev_journal_num = dec.varint("prev-journal-num")
            elif tag == RecordField.NEXT_FILE_NUM:
                self.next_file_num = dec.varint("next-file-num")
            elif tag == RecordField.SEQ_NUM:
                self.seq_num = dec.uvarint("seq-num")
            elif tag == RecordField.COMP_PTR:
                level = dec.uvarint("comp-ptr.level")
                ikey = dec.raw("comp-ptr.ikey")
                self.add_comp_ptr(level, ikey)
            elif tag == RecordField.ADD_TABLE:
                level = dec.uvarint("add-table.level")
                num = dec.varint("add-table.num")
                size = dec.varint("add-table.size")
                imin = dec.raw("add-table.imin")
                imax = dec.raw("add-table.imax")
                self.add_table(level, num, size, imin, imax)
            elif tag == RecordField.DEL_TABLE:
                level = dec.uvarint("del-table.level")
                num = dec.varint("del-table.num")
                self.del_table(level, num)