import struct

import pytest

from ldbstore.session_record import (
    AddedTable,
    CompPtr,
    DeletedTable,
    ManifestCorruptedError,
    RecordField,
    SessionRecord,
)
from ldbstore.storage import CorruptedError

KEY_TYPE_DEL = 0
KEY_TYPE_VAL = 1


def ikey(ukey, seq, key_type):
    return ukey + struct.pack("<Q", (seq << 8) | key_type)


def decode_encode(record):
    encoded = record.encode()
    other = SessionRecord()
    other.decode(encoded)
    return encoded, other, other.encode()


def test_encode_decode():
    big = 1 << 50
    v = SessionRecord()
    for i in range(4):
        encoded, _, again = decode_encode(v)
        assert encoded == again, f"iteration {i}"
        v.add_table(
            3,
            big + 300 + i,
            big + 400 + i,
            ikey(b"foo", big + 500 + 1, KEY_TYPE_VAL),
            ikey(b"zoo", big + 600 + 1, KEY_TYPE_DEL),
        )
        v.del_table(4, big + 700 + i)
        v.add_comp_ptr(i, ikey(b"x", big + 900 + 1, KEY_TYPE_VAL))

    v.comparer = "foo"
    v.journal_num = big + 100
    v.prev_journal_num = big + 99
    v.next_file_num = big + 200
    v.seq_num = big + 1000
    encoded, other, again = decode_encode(v)
    assert encoded == again

    assert other.comparer == "foo"
    assert other.journal_num == big + 100
    assert other.next_file_num == big + 200
    assert other.seq_num == big + 1000
    assert other.added_tables == v.added_tables
    assert other.deleted_tables == v.deleted_tables
    assert other.comp_ptrs == v.comp_ptrs
    assert not other.has(RecordField.PREV_JOURNAL_NUM)


def test_has_and_resets():
    r = SessionRecord()
    assert not r.has(RecordField.COMPARER)
    r.comparer = "cmp"
    assert r.has(RecordField.COMPARER)
    r.add_comp_ptr(1, b"k")
    r.add_table(0, 1, 2, b"a", b"b")
    r.del_table(0, 3)
    assert r.comp_ptrs == [CompPtr(1, b"k")]
    assert r.added_tables == [AddedTable(0, 1, 2, b"a", b"b")]
    assert r.deleted_tables == [DeletedTable(0, 3)]
    r.reset_comp_ptrs()
    r.reset_added_tables()
    r.reset_deleted_tables()
    assert not r.has(RecordField.COMP_PTR)
    assert not r.has(RecordField.ADD_TABLE)
    assert not r.has(RecordField.DEL_TABLE)
    assert (r.comp_ptrs, r.added_tables, r.deleted_tables) == ([], [], [])
    assert r.has(RecordField.COMPARER)


def test_wire_bytes():
    r = SessionRecord()
    r.comparer = "foo"
    assert r.encode() == b"\x01\x03foo"
    r = SessionRecord()
    r.journal_num = 5
    assert r.encode() == b"\x02\x05"
    assert SessionRecord().encode() == b""


def test_decode_prev_journal_and_unknown_tag():
    r = SessionRecord()
    r.decode(b"\x09\x07\x08")
    assert r.has(RecordField.PREV_JOURNAL_NUM)
    assert r.prev_journal_num == 7
    assert not r.has(RecordField.JOURNAL_NUM)


def test_decode_empty():
    r = SessionRecord()
    r.decode(b"")
    assert r.encode() == b""


def test_decode_accumulates():
    r = SessionRecord()
    r.decode(b"\x06\x01\x02")
    r.decode(b"\x06\x01\x03")
    assert r.deleted_tables == [DeletedTable(1, 2), DeletedTable(1, 3)]


@pytest.mark.parametrize(
    "data, field",
    [
        (b"\x80", "field-header"),
        (b"\x01", "comparer"),
        (b"\x01\x05ab", "comparer"),
        (b"\x02", "journal-num"),
        (b"\x07\x01\x02", "add-table.size"),
        (b"\x05\x01", "comp-ptr.ikey"),
    ],
)
def test_short_read(data, field):
    with pytest.raises(ManifestCorruptedError) as info:
        SessionRecord().decode(data)
    assert info.value.field == field
    assert info.value.reason == "short read"
    assert str(info.value) == f"leveldb: manifest corrupted (field '{field}'): short read"


def test_negative_varint_rejected():
    data = b"\x02" + b"\xff" * 9 + b"\x01"
    with pytest.raises(ManifestCorruptedError) as info:
        SessionRecord().decode(data)
    assert info.value.field == "journal-num"
    assert info.value.reason == "invalid negative value"


def test_varint_overflow():
    data = b"\x04" + b"\xff" * 9 + b"\x02"
    with pytest.raises(ManifestCorruptedError) as info:
        SessionRecord().decode(data)
    assert info.value.field == "seq-num"
    assert info.value.reason.startswith("binary:")


def test_corruption_is_corrupted_error():
    with pytest.raises(CorruptedError):
        SessionRecord().decode(b"\x01")


def test_encode_negative_raises():
    r = SessionRecord()
    r.next_file_num = -1
    with pytest.raises(ValueError, match="invalid negative value"):
        r.encode()