import logging
import os
import urllib.parse
from pathlib import Path
from typing import Iterator

import mmh3
import msgpack
import plyvel

from ..utils.varint import encode_varint, decode_varint

logger = logging.getLogger(__name__)


class BlockIndexNotFound(FileNotFoundError):
    pass


class BlockIndexStore:
    """Persistent cache of CAR section offsets in LevelDB.

    Scanning a large CAR file to locate its sections dominates the cost of
    opening it. This store keeps the result of that scan per archive so later
    sessions can skip it. An entry is only reused while the archive's size and
    modification time are unchanged.

    Key layout:
    - ``a<16-byte archive path hash>p<property>``: archive properties
      (path, size, mtime-ns, blocks)
    - ``a<16-byte archive path hash>b<varint sequence number>``: msgpack
      ``[cid_bytes, offset, length]``, one per block in archive order
    """
    __ARCHIVE_PREFIX = b'a'
    __PROPERTY_PREFIX = b'p'
    __BLOCK_PREFIX = b'b'

    PROPERTY_PATH = 'path'
    PROPERTY_SIZE = 'size'
    PROPERTY_MTIME = 'mtime-ns'
    PROPERTY_BLOCKS = 'blocks'

    def __init__(self, database_path: str | os.PathLike, create: bool = False):
        """Open the index database.

        Args:
            database_path: Directory of the LevelDB database
            create: Create the database if missing

        Raises:
            BlockIndexNotFound: Database missing and create=False
        """
        database_path = Path(database_path)
        if not create and not database_path.exists():
            raise BlockIndexNotFound(f"Block index {database_path} has not been created")

        if create:
            database_path.parent.mkdir(parents=True, exist_ok=True)

        self._database_path = database_path
        self._database: plyvel.DB | None = plyvel.DB(str(database_path), create_if_missing=create)

    def __del__(self):
        """Destructor ensures database is closed."""
        self.close()

    def __enter__(self):
        if self._database is None:
            raise BrokenPipeError(f"Block index {self._database_path} was closed")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        database = getattr(self, '_database', None)
        if database is not None:
            database.close()
            self._database = None

    def _archive_db(self, archive_path: Path) -> plyvel.DB:
        if self._database is None:
            raise BrokenPipeError(f"Block index {self._database_path} was closed")
        return self._database.prefixed_db(
            BlockIndexStore.__ARCHIVE_PREFIX + self._compute_path_hash(archive_path))

    def _read_property(self, archive_db: plyvel.DB, name: str) -> str | None:
        value = archive_db.get(BlockIndexStore.__PROPERTY_PREFIX + name.encode())
        return value.decode() if value is not None else None

    def load(self, archive_path: Path, st: os.stat_result) -> list[tuple[bytes, int, int]] | None:
        """Return the cached section index of an archive.

        Args:
            archive_path: Path of the archive
            st: Current stat of the archive, used to reject stale entries

        Returns:
            List of (cid_bytes, offset, length) in archive order, or None if the
            archive has no entry or the entry is stale
        """
        archive_db = self._archive_db(archive_path)
        stored_path = self._read_property(archive_db, BlockIndexStore.PROPERTY_PATH)
        if stored_path is None:
            return None

        if stored_path != str(archive_path.absolute()):
            logger.warning(f"Block index entry for {archive_path} belongs to {stored_path}, ignoring it")
            return None

        if self._read_property(archive_db, BlockIndexStore.PROPERTY_SIZE) != str(st.st_size) \
                or self._read_property(archive_db, BlockIndexStore.PROPERTY_MTIME) != str(st.st_mtime_ns):
            logger.warning(f"Block index entry for {archive_path} is stale")
            return None

        block_count = int(self._read_property(archive_db, BlockIndexStore.PROPERTY_BLOCKS) or 0)
        blocks_db = archive_db.prefixed_db(BlockIndexStore.__BLOCK_PREFIX)
        entries: list[tuple[int, bytes, int, int]] = []
        for key, value in blocks_db.iterator():
            seq_num, _ = decode_varint(key, 0)
            cid_bytes, offset, length = msgpack.loads(value)
            entries.append((seq_num, cid_bytes, offset, length))

        if len(entries) != block_count:
            logger.warning(f"Block index entry for {archive_path} is incomplete "
                           f"({len(entries)} of {block_count} blocks)")
            return None

        entries.sort()
        return [(cid_bytes, offset, length) for _, cid_bytes, offset, length in entries]

    def save(self, archive_path: Path, st: os.stat_result, entries: list[tuple[bytes, int, int]]) -> None:
        """Replace the cached section index of an archive."""
        archive_db = self._archive_db(archive_path)

        batch = archive_db.write_batch()
        for key, _ in archive_db.iterator():
            batch.delete(key)

        for seq_num, (cid_bytes, offset, length) in enumerate(entries):
            batch.put(BlockIndexStore.__BLOCK_PREFIX + encode_varint(seq_num),
                      msgpack.dumps([cid_bytes, offset, length]))

        properties = {
            BlockIndexStore.PROPERTY_PATH: str(archive_path.absolute()),
            BlockIndexStore.PROPERTY_SIZE: str(st.st_size),
            BlockIndexStore.PROPERTY_MTIME: str(st.st_mtime_ns),
            BlockIndexStore.PROPERTY_BLOCKS: str(len(entries)),
        }
        for name, value in properties.items():
            batch.put(BlockIndexStore.__PROPERTY_PREFIX + name.encode(), value.encode())

        batch.write()
        logger.info(f"Saved index of {len(entries)} blocks for {archive_path}")

    def inspect(self) -> Iterator[str]:
        """Generate human-readable index entries for debugging and inspection.

        Yields:
            Formatted strings showing archive properties and block entries with
            hex path hashes, sequence numbers, hex CIDs, offsets and lengths
        """
        if self._database is None:
            raise BrokenPipeError(f"Block index {self._database_path} was closed")

        hash_length = 16
        for key, value in self._database.iterator():
            key: bytes
            if not key.startswith(BlockIndexStore.__ARCHIVE_PREFIX) or len(key) < 1 + hash_length + 1:
                yield f'unknown {key.hex()} {value.hex()}'
                continue

            path_hash = '0x' + key[1:1 + hash_length].hex()
            rest = key[1 + hash_length:]
            if rest.startswith(BlockIndexStore.__PROPERTY_PREFIX):
                name = rest[len(BlockIndexStore.__PROPERTY_PREFIX):].decode()
                shown = urllib.parse.quote(value.decode()) if name == BlockIndexStore.PROPERTY_PATH \
                    else value.decode()
                yield f'archive-property {path_hash} {name} {shown}'
            elif rest.startswith(BlockIndexStore.__BLOCK_PREFIX):
                seq_num, _ = decode_varint(rest, len(BlockIndexStore.__BLOCK_PREFIX))
                cid_bytes, offset, length = msgpack.loads(value)
                yield f'block {path_hash} seq:{seq_num} cid:{cid_bytes.hex()} offset:{offset} length:{length}'
            else:
                yield f'unknown {key.hex()} {value.hex()}'

    @staticmethod
    def _compute_path_hash(archive_path: Path) -> bytes:
        """Compute 128-bit Murmur3 hash for an archive path.

        Args:
            archive_path: Archive path, made absolute before hashing

        Returns:
            16 bytes representing the 128-bit hash value
        """
        hash_value = mmh3.hash128(str(archive_path.absolute()).encode('utf-8'), signed=False)
        return hash_value.to_bytes(16, byteorder='big')
