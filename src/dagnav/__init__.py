from .archive.car import CarBlockSource
from .archive.index_store import BlockIndexStore
from .archive.settings import DagnavSettings
from .dag.cursor import DagCursor, resolve, resolve_cursor, list_descendants, walk
from .dag.errors import (
    DagError, ArchiveOpenFailed, InvalidRootCount, BlockNotFound, DecodeFailed, NotADirectory, LinkNotFound,
    UnsupportedCodec, EncodeFailed,
)
from .dag.formatter import format_node
from .dag.node import Node
from .fixture import UnixfsDag, FixtureNode, FixtureError, open_unixfs_car, format_dag_node
