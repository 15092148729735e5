"""Lazy cursors over a content-addressed DAG, path resolution and recursive listing.

A DagCursor is one position in the graph. Its decoded node and its directory
links are fetched on first use and cached for the lifetime of the cursor; the
archive underneath is assumed immutable. Child cursors are created when the
parent's links are first extracted, so cursors form a tree that mirrors the
paths taken through the graph: two paths reaching the same CID produce two
independent cursors.

Cursors are not thread-safe. The caches are filled by plain check-then-set,
so a cursor and everything reachable from it must be owned by a single
traversal thread at a time.
"""
import logging
from typing import Iterator, Sequence

from multiformats import CID

from .errors import LinkNotFound, NotADirectory
from .node import Node
from ..archive.car import BlockSource
from ..codec.registry import decode_block
from ..codec.dagpb import encode_name
from ..codec.unixfs import directory_links

logger = logging.getLogger(__name__)


class DagCursor:
    def __init__(self, blocks: BlockSource, cid: CID):
        self._blocks = blocks
        self._cid = cid
        self._node: Node | None = None
        self._links: dict[str, 'DagCursor'] | None = None
        self._is_leaf = False

    @property
    def cid(self) -> CID:
        return self._cid

    def ensure_node(self) -> Node:
        """Fetch and decode the node on first call, return the cached node afterwards.

        Raises:
            BlockNotFound: The block is not in the archive
            DecodeFailed: The block does not parse under its codec
        """
        if self._node is None:
            self._node = self._load(self._cid)
        return self._node

    def children(self) -> dict[str, 'DagCursor'] | None:
        """Return the named child cursors, or None if the node is not a directory.

        The outcome is computed once. A leaf is remembered as such and never
        re-examined.

        Raises:
            BlockNotFound: The node (or one of its directory shards) is missing
            DecodeFailed: The node is corrupt, including a corrupt directory
        """
        if self._links is None and not self._is_leaf:
            entries = directory_links(self.ensure_node(), self._load)
            if entries is None:
                self._is_leaf = True
            else:
                self._links = {name: DagCursor(self._blocks, cid) for name, cid in entries}
        return self._links

    def ensure_links(self) -> dict[str, 'DagCursor']:
        """Return the named child cursors.

        Raises:
            NotADirectory: The node is a leaf (a file, a raw block or a non-UnixFS node)
        """
        links = self.children()
        if links is None:
            raise NotADirectory(self._cid)
        return links

    def _load(self, cid: CID) -> Node:
        logger.debug(f"Fetching block {cid}")
        return decode_block(cid, self._blocks.get(cid))

    def __repr__(self):
        return f"DagCursor({self._cid})"


def resolve_cursor(cursor: DagCursor, segments: Sequence[str]) -> DagCursor:
    """Walk a cursor through a sequence of link names.

    Every cursor on the way, including the last one, has its node decoded.
    An empty sequence resolves to the starting cursor.

    Raises:
        LinkNotFound: A segment is not a link of the directory reached so far
        NotADirectory: A segment has to be looked up below a leaf
    """
    path = tuple(segments)
    current = cursor
    for segment in path:
        current.ensure_node()
        child = current.ensure_links().get(segment)
        if child is None:
            raise LinkNotFound(path, segment)
        current = child

    current.ensure_node()
    return current


def resolve(cursor: DagCursor, segments: Sequence[str]) -> Node:
    """Return the node at a path below the cursor; see resolve_cursor()."""
    return resolve_cursor(cursor, segments).ensure_node()


def walk(cursor: DagCursor, path: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], DagCursor]]:
    """Recursively traverse the descendants of a cursor, depth-first and pre-order.

    Siblings are visited in byte-wise order of their raw names, independent of
    the order the directory stores them in. Leaves are visited but not descended
    into.

    Args:
        cursor: Cursor whose descendants are traversed (not yielded itself)
        path: Path of the cursor, used as prefix of the yielded paths

    Yields:
        Tuples of (path, cursor) for each descendant, with the node decoded
    """
    links = cursor.children()
    if links is None:
        return

    for name in sorted(links, key=encode_name):
        child = links[name]
        child_path = path + (name,)
        child.ensure_node()
        yield child_path, child
        yield from walk(child, child_path)


def list_descendants(cursor: DagCursor, start_segments: Sequence[str] = ()) -> list[tuple[str, ...]]:
    """List every path below start_segments, in walk() order.

    Returned paths are measured from cursor, so each begins with
    start_segments and can be resolved again from the same cursor. The start
    path itself is not included.

    Raises:
        LinkNotFound: start_segments does not resolve
    """
    start_path = tuple(start_segments)
    start = resolve_cursor(cursor, start_path)
    return [path for path, _ in walk(start, start_path)]
