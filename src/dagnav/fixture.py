"""Fail-fast fixture accessors for UnixFS DAGs stored in CAR files.

These helpers serve test setup code asserting the shape of a fixture: any
error while opening, resolving or formatting is a broken fixture, so every
failure is raised as FixtureError naming the path, CID or codec involved.
Code that wants to recover from individual errors should use DagCursor and
the functions in dagnav.dag.cursor directly.
"""
import logging
import os
from pathlib import Path
from typing import Any

from multiformats import CID

from .archive.car import CarBlockSource, BlockSource
from .archive.index_store import BlockIndexStore
from .archive.path import find_settings_root, get_fixtures_dir, resolve_fixture_path
from .archive.settings import DagnavSettings, SETTING_INDEX_PATH
from .codec.unixfs import UnixfsData, UnixfsType, unixfs_data_of
from .dag.cursor import DagCursor, resolve, list_descendants
from .dag.errors import DagError, InvalidRootCount
from .dag.formatter import format_node
from .dag.node import Node

logger = logging.getLogger(__name__)


class FixtureError(AssertionError):
    """A fixture archive could not be opened or does not have the expected shape."""


def _display_path(names: tuple[str, ...]) -> str:
    return '/' + '/'.join(names)


class FixtureNode:
    """A decoded fixture node bundled with convenience accessors."""

    def __init__(self, node: Node):
        self._node = node

    @property
    def node(self) -> Node:
        return self._node

    @property
    def cid(self) -> CID:
        return self._node.cid

    @property
    def cid_str(self) -> str:
        return str(self._node.cid)

    @property
    def raw_data(self) -> bytes:
        return self._node.raw_data

    @property
    def value(self) -> Any:
        return self._node.value

    @property
    def unixfs_data(self) -> UnixfsData | None:
        try:
            return unixfs_data_of(self._node)
        except DagError as e:
            raise FixtureError(f"invalid unixfs data in {self.cid_str}: {e}") from e

    @property
    def is_directory(self) -> bool:
        unixfs = self.unixfs_data
        return unixfs is not None and unixfs.type in (UnixfsType.DIRECTORY, UnixfsType.HAMT_SHARD)

    @property
    def file_size(self) -> int | None:
        """Size of the file content: the UnixFS filesize, or the block size for raw blocks."""
        if self._node.codec == 'raw':
            return len(self._node.raw_data)
        unixfs = self.unixfs_data
        if unixfs is None:
            return None
        if unixfs.file_size is not None:
            return unixfs.file_size
        return len(unixfs.data) if unixfs.data is not None else None

    def formatted(self, codec: str) -> bytes:
        return format_dag_node(self._node, codec)

    def __str__(self):
        return self.cid_str

    def __repr__(self):
        return f"FixtureNode({self.cid_str})"


def format_dag_node(node: Node, codec: str) -> bytes:
    """Encode a node under the named codec, raising FixtureError on failure."""
    try:
        return format_node(node, codec)
    except DagError as e:
        raise FixtureError(f"cannot format {node.cid} as {codec}: {e}") from e


class UnixfsDag:
    """Navigation over the UnixFS tree rooted at the single root of an archive.

    Paths are given as separate link names; no names means the root. Nodes are
    fetched lazily and cached, so resolving many paths under the same directory
    decodes each block on the way once.
    """

    def __init__(self, blocks: BlockSource, root: CID):
        self._blocks = blocks
        self._root = DagCursor(blocks, root)

    @classmethod
    def from_blocks(cls, blocks: CarBlockSource) -> 'UnixfsDag':
        """Create a navigator over an opened archive.

        Raises:
            InvalidRootCount: The archive does not declare exactly one root
        """
        roots = blocks.roots()
        if len(roots) != 1:
            raise InvalidRootCount(len(roots))
        return cls(blocks, roots[0])

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def close(self):
        close = getattr(self._blocks, 'close', None)
        if close is not None:
            close()

    @property
    def root_cursor(self) -> DagCursor:
        return self._root

    def _node(self, names: tuple[str, ...]) -> Node:
        try:
            return resolve(self._root, names)
        except DagError as e:
            raise FixtureError(f"cannot get node {_display_path(names)}: {e}") from e

    def get_node(self, *names: str) -> FixtureNode:
        return FixtureNode(self._node(names))

    def get_root(self) -> FixtureNode:
        return self.get_node()

    def get_children(self, *names: str) -> list[FixtureNode]:
        """Return every descendant of a path in depth-first order, names sorted per level."""
        try:
            paths = list_descendants(self._root, names)
        except DagError as e:
            raise FixtureError(f"cannot list children of {_display_path(names)}: {e}") from e
        return [self.get_node(*path) for path in paths]

    def get_children_cids(self, *names: str) -> list[str]:
        return [node.cid_str for node in self.get_children(*names)]

    def get_cid(self, *names: str) -> str:
        return str(self._node(names).cid)

    def get_raw_data(self, *names: str) -> bytes:
        return self._node(names).raw_data

    def get_formatted_dag_node(self, codec: str, *names: str) -> bytes:
        return format_dag_node(self._node(names), codec)


def open_block_index(settings: DagnavSettings) -> BlockIndexStore | None:
    index_path = settings.get_path(SETTING_INDEX_PATH)
    if index_path is None:
        return None
    return BlockIndexStore(index_path, create=True)


def open_unixfs_car(file: str | os.PathLike, settings: DagnavSettings | None = None) -> UnixfsDag:
    """Open a fixture archive as a UnixfsDag.

    Args:
        file: Fixture name, looked up in the fixtures directory unless it starts
              with ./ or is absolute
        settings: Settings to use; found by searching upward from the working
                  directory when omitted

    Raises:
        FixtureError: The archive cannot be opened or does not have exactly one root
    """
    if settings is None:
        settings = DagnavSettings(find_settings_root(Path.cwd()))

    fixture_path = resolve_fixture_path(file, get_fixtures_dir(settings))
    index_store = None
    try:
        index_store = open_block_index(settings)
        blocks = CarBlockSource(fixture_path, index_store)
    except DagError as e:
        raise FixtureError(f"cannot open fixture {fixture_path}: {e}") from e
    finally:
        if index_store is not None:
            index_store.close()

    try:
        dag = UnixfsDag.from_blocks(blocks)
    except DagError as e:
        blocks.close()
        raise FixtureError(f"cannot open fixture {fixture_path}: {e}") from e

    logger.info(f"Opened fixture {fixture_path} with root {dag.root_cursor.cid}")
    return dag
