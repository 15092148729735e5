"""Read-only block source over CAR (Content Addressable aRchive) files.

CARv1 layout::

    varint(header length) | dag-cbor {"version": 1, "roots": [CID, ...]}
    varint(section length) | CID | block bytes
    ...

CARv2 wraps a CARv1 payload: an 11-byte pragma, then a 40-byte header of
16 characteristic bytes and three little-endian uint64 values (data offset,
data size, index offset). The trailing CARv2 index is not used; the payload
sections are scanned instead.
"""
import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterator, Protocol, TYPE_CHECKING

import dag_cbor
from multiformats import CID, multihash, varint

from ..dag.errors import ArchiveOpenFailed, BlockNotFound
from ..utils.varint import read_varint

if TYPE_CHECKING:
    from .index_store import BlockIndexStore

logger = logging.getLogger(__name__)

CARV2_PRAGMA = bytes.fromhex('0aa16776657273696f6e02')
CARV2_HEADER_SIZE = 40

# Enough to hold the CID prefix and a sha2-512 digest
_CID_PEEK_SIZE = 96


class BlockSource(Protocol):
    def get(self, cid: CID) -> bytes:
        ...


def measure_cid(buffer: bytes) -> int:
    """Return the length of the binary CID at the start of a buffer.

    Raises:
        ValueError: If the buffer does not start with a well-formed CID prefix
    """
    if buffer[:2] == b'\x12\x20':
        # CIDv0 is a bare sha2-256 multihash
        return 34

    # CIDv1: version, codec and multihash code, then the digest length
    length = 0
    remainder = memoryview(buffer)
    for _ in range(3):
        _, consumed, remainder = varint.decode_raw(remainder)
        length += consumed
    digest_length, consumed, _ = varint.decode_raw(remainder)
    return length + consumed + digest_length


def _identity_digest(cid: CID) -> bytes | None:
    if cid.hashfun.name != 'identity':
        return None
    _, raw_digest = multihash.unwrap_raw(cid.digest)
    return bytes(raw_digest)


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise ValueError(f"{what} truncated: need {size} bytes, have {len(data)}")
    return data


class CarBlockSource:
    """Read-only access to the blocks of a CAR file, keyed by content identifier.

    Opening the archive parses its header and builds an in-memory offset index of
    all sections; block payloads are read from disk on demand. Lookups match on
    the CID multihash, so a block stored under a CIDv0 is also found through the
    equivalent CIDv1 and vice versa. CIDs using the identity multihash are
    answered from their inline digest.

    The archive is assumed immutable while it is open.
    """

    def __init__(self, path: str | os.PathLike, index_store: 'BlockIndexStore | None' = None):
        """Open a CAR file.

        Args:
            path: Path to a CARv1 or CARv2 file
            index_store: Optional persistent index used to skip the section scan

        Raises:
            ArchiveOpenFailed: File missing, unreadable or malformed
        """
        self._path = Path(path)
        try:
            self._file: BinaryIO | None = open(self._path, 'rb')
        except OSError as e:
            raise ArchiveOpenFailed(f"cannot open archive {self._path}: {e}") from e

        # multihash -> (cid bytes, block offset, block length)
        self._entries: dict[bytes, tuple[bytes, int, int]] = {}

        try:
            st = os.fstat(self._file.fileno())
            self._roots, data_start, data_end = self._read_header(st.st_size)

            cached = index_store.load(self._path, st) if index_store is not None else None
            if cached is not None:
                for cid_bytes, offset, length in cached:
                    self._add_entry(cid_bytes, offset, length)
                logger.info(f"Loaded index of {len(self._entries)} blocks for {self._path}")
            else:
                self._scan_sections(data_start, data_end)
                logger.info(f"Scanned {len(self._entries)} blocks in {self._path}")
                if index_store is not None:
                    index_store.save(self._path, st, self._index_entries())
        except ValueError as e:
            self.close()
            raise ArchiveOpenFailed(f"malformed archive {self._path}: {e}") from e
        except Exception:
            self.close()
            raise

    def __del__(self):
        """Destructor ensures the file handle is closed."""
        self.close()

    def __enter__(self):
        if self._file is None:
            raise BrokenPipeError(f"Archive {self._path} was closed")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        file = getattr(self, '_file', None)
        if file is not None:
            file.close()
            self._file = None

    @property
    def path(self) -> Path:
        return self._path

    def roots(self) -> list[CID]:
        """Return the root CIDs declared in the archive header."""
        return list(self._roots)

    def get(self, cid: CID) -> bytes:
        """Return the bytes of the block addressed by cid.

        Raises:
            BlockNotFound: If the archive holds no block with this multihash
        """
        entry = self._entries.get(bytes(cid.digest))
        if entry is None:
            inline = _identity_digest(cid)
            if inline is not None:
                return inline
            raise BlockNotFound(cid)

        if self._file is None:
            raise BrokenPipeError(f"Archive {self._path} was closed")

        _, offset, length = entry
        logger.debug(f"Reading block {cid} at offset {offset} ({length} bytes)")
        self._file.seek(offset)
        return self._file.read(length)

    def has(self, cid: CID) -> bool:
        return bytes(cid.digest) in self._entries or _identity_digest(cid) is not None

    def __contains__(self, cid: CID) -> bool:
        return self.has(cid)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[CID]:
        """Iterate over the CIDs of all blocks in archive order."""
        for cid_bytes, _, _ in sorted(self._entries.values(), key=lambda e: e[1]):
            yield CID.decode(cid_bytes)

    def _index_entries(self) -> list[tuple[bytes, int, int]]:
        return sorted(self._entries.values(), key=lambda e: e[1])

    def _add_entry(self, cid_bytes: bytes, offset: int, length: int):
        try:
            cid = CID.decode(cid_bytes)
        except KeyError as e:
            raise ValueError(f"unknown codec or hash function in CID {cid_bytes.hex()}: {e}") from e
        # First occurrence wins for duplicated blocks
        self._entries.setdefault(bytes(cid.digest), (cid_bytes, offset, length))

    def _read_header(self, file_size: int) -> tuple[list[CID], int, int]:
        """Parse the CARv1 header, unwrapping a CARv2 container first.

        Returns:
            Tuple of (roots, data_start, data_end) where the data range covers the
            CARv1 sections following the header
        """
        assert self._file is not None
        pragma = self._file.read(len(CARV2_PRAGMA))
        if pragma == CARV2_PRAGMA:
            header = _read_exact(self._file, CARV2_HEADER_SIZE, "CARv2 header")
            data_offset = int.from_bytes(header[16:24], 'little')
            data_size = int.from_bytes(header[24:32], 'little')
            if data_offset + data_size > file_size:
                raise ValueError(f"CARv2 data payload exceeds file size ({data_offset}+{data_size} > {file_size})")
            payload_start, payload_end = data_offset, data_offset + data_size
        else:
            payload_start, payload_end = 0, file_size

        self._file.seek(payload_start)
        header_length = read_varint(self._file)
        if not header_length:
            raise ValueError("missing CARv1 header")
        header_bytes = _read_exact(self._file, header_length, "CARv1 header")

        try:
            header = dag_cbor.decode(header_bytes)
        except Exception as e:
            raise ValueError(f"invalid CARv1 header: {e}") from e

        if not isinstance(header, dict) or header.get('version') != 1:
            raise ValueError(f"unsupported CAR header: {header!r}")

        roots = header.get('roots')
        if not isinstance(roots, list) or not all(isinstance(root, CID) for root in roots):
            raise ValueError(f"invalid roots in CAR header: {roots!r}")

        return roots, self._file.tell(), payload_end

    def _scan_sections(self, start: int, end: int):
        assert self._file is not None
        position = start
        while position < end:
            self._file.seek(position)
            section_length = read_varint(self._file)
            if section_length is None:
                break
            if section_length == 0:
                raise ValueError(f"zero-length section at offset {position}")

            section_start = self._file.tell()
            if section_start + section_length > end:
                raise ValueError(f"section at offset {position} truncated")

            peek = self._file.read(min(section_length, _CID_PEEK_SIZE))
            cid_length = measure_cid(peek)
            if cid_length > section_length:
                raise ValueError(f"CID at offset {section_start} longer than its section")
            if cid_length > len(peek):
                self._file.seek(section_start)
                cid_bytes = self._file.read(cid_length)
            else:
                cid_bytes = peek[:cid_length]

            self._add_entry(cid_bytes, section_start + cid_length, section_length - cid_length)
            position = section_start + section_length
