"""Errors raised while opening archives and navigating the DAG."""


class DagError(Exception):
    """Base class for all archive, traversal and codec errors."""


class ArchiveOpenFailed(DagError):
    """The archive file is missing or its header/sections are corrupt."""


class InvalidRootCount(DagError):
    def __init__(self, count: int):
        super().__init__(f"expected 1 root, got {count}")
        self.count = count


class BlockNotFound(DagError, KeyError):
    def __init__(self, cid):
        super().__init__(f"block {cid} not found in archive")
        self.cid = cid

    def __str__(self):
        # KeyError would otherwise quote the message
        return str(self.args[0])


class DecodeFailed(DagError):
    """Block bytes do not parse under the codec named by their CID."""


class NotADirectory(DagError):
    def __init__(self, cid):
        super().__init__(f"node {cid} is not a directory")
        self.cid = cid


class LinkNotFound(DagError, LookupError):
    def __init__(self, path: tuple[str, ...], segment: str):
        super().__init__(f"no link named {'/'.join(path)} (missing segment {segment!r})")
        self.path = path
        self.segment = segment


class UnsupportedCodec(DagError):
    def __init__(self, codec: str):
        super().__init__(f"invalid encoding: {codec}")
        self.codec = codec


class EncodeFailed(DagError):
    """The node cannot be represented in the requested codec."""
