from typing import Any, TYPE_CHECKING

from multiformats import CID

if TYPE_CHECKING:
    from ..codec.dagpb import PBNode


class Node:
    """A decoded block.

    Attributes:
        cid: Content identifier the block was fetched by
        raw_data: The block bytes exactly as stored in the archive
        value: IPLD data-model form of the block (dicts, lists, str, int, float,
               bool, None, bytes and CID values)
        pb_node: The parsed PBNode for dag-pb blocks, None for other codecs
    """

    def __init__(self, cid: CID, raw_data: bytes, value: Any, pb_node: 'PBNode | None' = None):
        self.cid = cid
        self.raw_data = raw_data
        self.value = value
        self.pb_node = pb_node

    @property
    def codec(self) -> str:
        return self.cid.codec.name

    def __repr__(self):
        return f"Node({self.cid}, codec={self.codec}, size={len(self.raw_data)})"
