"""UnixFS data interpretation on top of dag-pb nodes.

The UnixFS ``Data`` message lives in the ``Data`` field of a dag-pb node::

    message Data {
      enum DataType { Raw = 0; Directory = 1; File = 2; Metadata = 3; Symlink = 4; HAMTShard = 5; }
      required DataType Type = 1;
      optional bytes Data = 2;
      optional uint64 filesize = 3;
      repeated uint64 blocksizes = 4;
      optional uint64 hashType = 5;
      optional uint64 fanout = 6;
      optional uint32 mode = 7;
      optional UnixTime mtime = 8;
    }
"""
import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable, TYPE_CHECKING

from google.protobuf.message import DecodeError
from multiformats import CID

from .dagpb import PBNode
from .messages import UnixfsDataMessage
from ..dag.errors import DecodeFailed

if TYPE_CHECKING:
    from ..dag.node import Node

logger = logging.getLogger(__name__)


class UnixfsType(IntEnum):
    RAW = 0
    DIRECTORY = 1
    FILE = 2
    METADATA = 3
    SYMLINK = 4
    HAMT_SHARD = 5


@dataclass
class UnixfsData:
    type: UnixfsType
    data: bytes | None = None
    file_size: int | None = None
    block_sizes: list[int] = field(default_factory=list)
    hash_type: int | None = None
    fanout: int | None = None
    mode: int | None = None
    mtime: tuple[int, int] | None = None
    """(seconds, nanoseconds) since the epoch"""


def _optional(message, name: str):
    return getattr(message, name) if message.HasField(name) else None


def decode_unixfs_data(data: bytes) -> UnixfsData:
    """Decode the UnixFS Data message carried by a dag-pb node.

    Raises:
        DecodeFailed: If the message is malformed or has no known Type
    """
    message = UnixfsDataMessage()
    try:
        message.ParseFromString(data)
    except DecodeError as e:
        raise DecodeFailed(f"invalid unixfs data: {e}") from e

    if not message.HasField('Type'):
        raise DecodeFailed("unixfs data has no Type")
    try:
        type_ = UnixfsType(message.Type)
    except ValueError as e:
        raise DecodeFailed(f"unknown unixfs type {message.Type}") from e

    mtime = None
    if message.HasField('mtime'):
        mtime = (message.mtime.Seconds, message.mtime.FractionalNanoseconds)

    return UnixfsData(
        type=type_,
        data=_optional(message, 'Data'),
        file_size=_optional(message, 'filesize'),
        block_sizes=list(message.blocksizes),
        hash_type=_optional(message, 'hashType'),
        fanout=_optional(message, 'fanout'),
        mode=_optional(message, 'mode'),
        mtime=mtime,
    )


def unixfs_data_of(node: 'Node') -> UnixfsData | None:
    """Return the UnixFS metadata of a node, or None if it is not a dag-pb node with data."""
    if node.pb_node is None or node.pb_node.data is None:
        return None
    return decode_unixfs_data(node.pb_node.data)


def _shard_prefix_width(fanout: int | None) -> int:
    if fanout is None or fanout < 2 or fanout & (fanout - 1):
        raise DecodeFailed(f"invalid HAMT fanout: {fanout}")
    return len(format(fanout - 1, 'X'))


def _walk_shard(pb_node: PBNode, unixfs: UnixfsData, load: Callable[[CID], 'Node'],
                result: list[tuple[str, CID]]) -> None:
    width = _shard_prefix_width(unixfs.fanout)
    for link in pb_node.links:
        name = link.name or ''
        if len(name) < width:
            raise DecodeFailed(f"HAMT link name {name!r} shorter than bucket prefix")

        if len(name) > width:
            result.append((name[width:], link.hash))
            continue

        # A bare bucket prefix points at a sub-shard
        child = load(link.hash)
        child_unixfs = unixfs_data_of(child)
        if child_unixfs is None or child_unixfs.type != UnixfsType.HAMT_SHARD:
            raise DecodeFailed(f"HAMT bucket {name} of {link.hash} is not a shard")
        _walk_shard(child.pb_node, child_unixfs, load, result)


def directory_links(node: 'Node', load: Callable[[CID], 'Node']) -> list[tuple[str, CID]] | None:
    """Interpret a node as a UnixFS directory and return its named links.

    Basic directories return their links in stored order. HAMT-sharded
    directories are flattened: sub-shards are fetched through ``load`` and
    the bucket prefixes are stripped from entry names.

    Args:
        node: Decoded node to interpret
        load: Function fetching and decoding a block by CID, used for sub-shards

    Returns:
        List of (name, cid) pairs, or None if the node is not a directory
        (a raw block, a non dag-pb node, or a UnixFS file or symlink)

    Raises:
        DecodeFailed: If the node claims to be a directory but is corrupt
    """
    unixfs = unixfs_data_of(node)
    if unixfs is None:
        return None

    if unixfs.type == UnixfsType.DIRECTORY:
        return [(link.name or '', link.hash) for link in node.pb_node.links]

    if unixfs.type == UnixfsType.HAMT_SHARD:
        result: list[tuple[str, CID]] = []
        _walk_shard(node.pb_node, unixfs, load, result)
        logger.debug(f"Flattened HAMT directory {node.cid} into {len(result)} entries")
        return result

    return None
