import io

from .node import Node
from ..codec.registry import lookup_encoder


def format_node(node: Node, codec: str) -> bytes:
    """Re-encode a decoded node under the named codec.

    The node is encoded into a private buffer, so a failing encoder never
    leaves partial output behind. Results are not cached.

    Raises:
        UnsupportedCodec: If no encoder is registered for the codec
        EncodeFailed: If the node cannot be represented in the codec
    """
    encoder = lookup_encoder(codec)
    output = io.BytesIO()
    encoder(node.value, output)
    return output.getvalue()
