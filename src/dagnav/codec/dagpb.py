"""dag-pb codec: the protobuf PBNode/PBLink envelope used by UnixFS.

Blocks are parsed and serialized with the protobuf runtime (see
dagnav.codec.messages). Only the canonical encoding is accepted: all Links
before Data, no unknown or repeated fields and minimal varints. A block is
canonical when re-encoding what was parsed reproduces it exactly.
"""
from typing import Any, BinaryIO, NamedTuple

from google.protobuf.message import DecodeError
from multiformats import CID

from .messages import PBLinkMessage, PBNodeMessage
from ..dag.errors import DecodeFailed, EncodeFailed


class PBLink(NamedTuple):
    hash: CID
    name: str | None = None
    tsize: int | None = None


class PBNode(NamedTuple):
    links: list[PBLink]
    data: bytes | None = None


def _decode_name(name: bytes) -> str:
    # Names are arbitrary bytes; undecodable bytes are kept as lone surrogates
    return name.decode('utf-8', 'surrogateescape')


def encode_name(name: str) -> bytes:
    return name.encode('utf-8', 'surrogateescape')


def _decode_link(message) -> PBLink:
    if not message.HasField('Hash'):
        raise ValueError("PBLink has no Hash")

    return PBLink(
        CID.decode(message.Hash),
        _decode_name(message.Name) if message.HasField('Name') else None,
        message.Tsize if message.HasField('Tsize') else None,
    )


def _serialize(node: PBNode) -> bytes:
    links_message = PBNodeMessage()
    for link in node.links:
        link_message = links_message.Links.add(Hash=bytes(link.hash))
        if link.name is not None:
            link_message.Name = encode_name(link.name)
        if link.tsize is not None:
            link_message.Tsize = link.tsize

    # Protobuf serializes by field number, which would put Data first
    data_message = PBNodeMessage()
    if node.data is not None:
        data_message.Data = node.data

    return links_message.SerializeToString() + data_message.SerializeToString()


def decode_pbnode(data: bytes) -> PBNode:
    """Decode a dag-pb block.

    Raises:
        DecodeFailed: If the bytes are not a well-formed, canonically encoded PBNode
    """
    message = PBNodeMessage()
    try:
        message.ParseFromString(data)
        node = PBNode(
            [_decode_link(link) for link in message.Links],
            message.Data if message.HasField('Data') else None,
        )
    except (DecodeError, ValueError, KeyError) as e:
        raise DecodeFailed(f"invalid dag-pb node: {e}") from e

    if _serialize(node) != data:
        raise DecodeFailed("invalid dag-pb node: not canonically encoded")

    return node


def encode_pbnode(node: PBNode, stream: BinaryIO) -> None:
    """Write the canonical dag-pb encoding of a PBNode to a stream.

    Raises:
        EncodeFailed: If a field is out of range for its protobuf type
    """
    try:
        encoded = _serialize(node)
    except (TypeError, ValueError) as e:
        raise EncodeFailed(f"cannot encode dag-pb node: {e}") from e
    stream.write(encoded)


def to_data_model(node: PBNode) -> dict[str, Any]:
    """Convert a PBNode to its IPLD data-model form.

    Absent optional fields are omitted rather than set to None.
    """
    links = []
    for link in node.links:
        entry: dict[str, Any] = {'Hash': link.hash}
        if link.name is not None:
            entry['Name'] = link.name
        if link.tsize is not None:
            entry['Tsize'] = link.tsize
        links.append(entry)

    value: dict[str, Any] = {'Links': links}
    if node.data is not None:
        value['Data'] = node.data
    return value


def from_data_model(value: Any) -> PBNode:
    """Convert an IPLD data-model value back to a PBNode.

    Raises:
        EncodeFailed: If the value does not have the dag-pb shape
    """
    if not isinstance(value, dict) or 'Links' not in value or not set(value) <= {'Data', 'Links'}:
        raise EncodeFailed("dag-pb requires a map with a Links list and optional Data bytes")

    data = value.get('Data')
    if data is not None and not isinstance(data, bytes):
        raise EncodeFailed("dag-pb Data must be bytes")

    links = []
    for entry in value['Links']:
        if not isinstance(entry, dict) or not isinstance(entry.get('Hash'), CID) \
                or not set(entry) <= {'Hash', 'Name', 'Tsize'}:
            raise EncodeFailed(f"invalid dag-pb link: {entry!r}")
        links.append(PBLink(entry['Hash'], entry.get('Name'), entry.get('Tsize')))

    return PBNode(links, data)
