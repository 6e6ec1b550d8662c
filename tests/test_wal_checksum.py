"""
Tests for record log checksums and corruption detection.
"""

import os
import zlib

import pytest

from globaldb.engine.recoverer import HEADER_KEY, TableRecoverer, header_value
from globaldb.models.exceptions import WALCorruptionError
from globaldb.models.key import pack
from globaldb.models.ordered_table import OrderedTable
from globaldb.models.sortedcontainers import RedBlackTree
from globaldb.models.value import Value
from globaldb.models.wal import WAL
from globaldb.models.wal_entry import WALEntry


def _write(wal_path, entries):
    wal = WAL(id="test", file_path=str(wal_path))
    wal.open()
    wal.batch_append(entries)
    wal.close()


def _entry_offset(wal_path, index):
    """File offset of the entry at position `index`."""
    with open(wal_path, "rb") as f:
        for _ in range(index):
            length = int.from_bytes(f.read(4), "big")
            f.read(length)
            f.read(4)  # Skip checksum
        return f.tell()


def _entries(count):
    return [
        WALEntry(key=pack(("key", i)), value=Value.regular(f"value{i}"), seq=i)
        for i in range(count)
    ]


class TestWALChecksumBasics:
    """Test basic checksum functionality."""

    def test_write_and_read_with_checksum(self, tmp_path):
        """Test that entries can be written and read with checksums."""
        wal_path = tmp_path / "test.wal"
        wal = WAL(id="test", file_path=str(wal_path))
        wal.open()

        wal.append(WALEntry(key=b"key1", value=Value.regular("value1"), seq=0))
        wal.append(WALEntry(key=b"key2", value=Value.regular("value2"), seq=1))
        wal.append(WALEntry(key=b"key3", value=Value.regular("value3"), seq=2))

        wal.close()

        wal = WAL(id="test", file_path=str(wal_path))
        wal.open(read_only=True)

        entries = list(wal)
        assert [e.key for e in entries] == [b"key1", b"key2", b"key3"]

        wal.close()

    def test_batch_append_with_checksum(self, tmp_path):
        """Test batch operations include checksums."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(10))

        read_entries = list(WAL(id="test", file_path=str(wal_path)))
        assert len(read_entries) == 10
        for i, entry in enumerate(read_entries):
            assert entry.key == pack(("key", i))
            assert entry.value.data == f"value{i}".encode()

    def test_checksum_computed_correctly(self, tmp_path):
        """Verify checksum matches expected CRC32 value."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, [WALEntry(key=b"testkey", value=Value.regular("testvalue"), seq=0)])

        with open(wal_path, "rb") as f:
            length = int.from_bytes(f.read(4), "big")
            entry_bytes = f.read(length)
            stored_checksum = int.from_bytes(f.read(4), "big")

        assert stored_checksum == zlib.crc32(entry_bytes) & 0xffffffff


class TestWALCorruptionDetection:
    """Test corruption detection via checksums."""

    def test_corrupted_entry_data_detected(self, tmp_path):
        """Test that corrupted entry data is detected."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(1))

        # Flip one byte inside the entry data
        with open(wal_path, "r+b") as f:
            f.seek(10)
            original_byte = f.read(1)
            f.seek(10)
            f.write(bytes([original_byte[0] ^ 0xFF]))

        with pytest.raises(WALCorruptionError) as exc_info:
            list(WAL(id="test", file_path=str(wal_path)))

        assert exc_info.value.entry_offset == 0

    def test_corrupted_checksum_detected(self, tmp_path):
        """Test that corrupted checksum is detected."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(1))

        file_size = os.path.getsize(wal_path)
        with open(wal_path, "r+b") as f:
            f.seek(file_size - 4)
            f.write(b"\xFF\xFF\xFF\xFF")

        with pytest.raises(WALCorruptionError):
            list(WAL(id="test", file_path=str(wal_path)))

    def test_truncated_entry_is_end_of_log(self, tmp_path):
        """Test that a torn tail (missing checksum) ends the log cleanly."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(2))

        file_size = os.path.getsize(wal_path)
        with open(wal_path, "r+b") as f:
            f.truncate(file_size - 2)

        entries = list(WAL(id="test", file_path=str(wal_path)))
        assert len(entries) == 1

    def test_valid_offset_stops_before_torn_tail(self, tmp_path):
        """Test the iterator reports where the last complete entry ends."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(3))
        third_entry_offset = _entry_offset(wal_path, 2)

        with open(wal_path, "r+b") as f:
            f.truncate(third_entry_offset + 5)

        entries = iter(WAL(id="test", file_path=str(wal_path)))
        assert len(list(entries)) == 2
        assert entries.valid_offset == third_entry_offset

    def test_corruption_offset_reported(self, tmp_path):
        """Test that corruption error includes correct file offset."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(3))
        second_entry_offset = _entry_offset(wal_path, 1)

        with open(wal_path, "r+b") as f:
            f.seek(second_entry_offset + 10)
            f.write(b"\xFF")

        entries_read = []
        with pytest.raises(WALCorruptionError) as exc_info:
            for entry in WAL(id="test", file_path=str(wal_path)):
                entries_read.append(entry)

        assert exc_info.value.entry_offset == second_entry_offset
        assert len(entries_read) == 1


class TestWALRecoveryWithChecksums:
    """Test recovery behavior with checksums."""

    def test_recovery_stops_at_corruption(self, tmp_path):
        """Test that recovery fails fast on corrupt entry."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, _entries(10))
        entry5_offset = _entry_offset(wal_path, 5)

        with open(wal_path, "r+b") as f:
            f.seek(entry5_offset + 10)
            f.write(b"\xFF")

        wal = WAL(id="test", file_path=str(wal_path))
        with pytest.raises(WALCorruptionError):
            TableRecoverer().recover(wal, OrderedTable(RedBlackTree()))

    def test_recovery_with_valid_checksums(self, tmp_path):
        """Test that recovery replays sets and deletes after the header."""
        wal_path = tmp_path / "test.wal"
        entries = [WALEntry(key=HEADER_KEY, value=header_value("m"), seq=0)]
        entries += [
            WALEntry(key=pack(("key", i)), value=Value.regular(f"value{i}"), seq=i + 1)
            for i in range(20)
        ]
        entries.append(WALEntry(key=pack(("key", 3)), value=Value.tombstone(), seq=21))
        _write(wal_path, entries)

        table = OrderedTable(RedBlackTree())
        key_type, replayed, valid_end = TableRecoverer().recover(
            WAL(id="test", file_path=str(wal_path)), table
        )

        assert key_type == "m"
        assert replayed == 21
        assert valid_end == os.path.getsize(wal_path)
        assert table.size() == 19
        assert not table.has(pack(("key", 3)))
        assert table.get(pack(("key", 7))).data == b"value7"


class TestWALChecksumEdgeCases:
    """Test edge cases with checksums."""

    def test_empty_wal_with_checksum(self, tmp_path):
        """Test empty log files work correctly."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, [])

        assert list(WAL(id="test", file_path=str(wal_path))) == []

    def test_missing_wal_is_empty(self, tmp_path):
        """Test iterating a log that was never written."""
        assert list(WAL(id="test", file_path=str(tmp_path / "absent.wal"))) == []

    def test_large_entry_checksum(self, tmp_path):
        """Test checksum with large entry data (100KB+)."""
        wal_path = tmp_path / "test.wal"
        large_value = "x" * (200 * 1024)
        _write(wal_path, [WALEntry(key=b"largekey", value=Value.regular(large_value), seq=0)])

        entries = list(WAL(id="test", file_path=str(wal_path)))
        assert len(entries) == 1
        assert entries[0].value.text() == large_value

    def test_unicode_data_checksum(self, tmp_path):
        """Test checksum correctly handles unicode keys and data."""
        wal_path = tmp_path / "test.wal"
        unicode_key = pack(("키🔑", 1))
        _write(wal_path, [WALEntry(key=unicode_key, value=Value.regular("値💎"), seq=0)])

        entries = list(WAL(id="test", file_path=str(wal_path)))
        assert entries[0].key == unicode_key
        assert entries[0].value.text() == "値💎"

    def test_tombstone_value_checksum(self, tmp_path):
        """Test checksum with tombstone values."""
        wal_path = tmp_path / "test.wal"
        _write(wal_path, [WALEntry(key=b"deletedkey", value=Value.tombstone(), seq=0)])

        entries = list(WAL(id="test", file_path=str(wal_path)))
        assert entries[0].key == b"deletedkey"
        assert entries[0].value.is_tombstone()
