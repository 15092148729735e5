"""Codec registry mapping multicodec names to block decoders and node encoders."""
import base64
import json
import logging
from typing import Any, BinaryIO, Callable

import cbor2
import dag_cbor
from multiformats import CID

from .dagpb import PBNode, decode_pbnode, encode_pbnode, from_data_model, to_data_model
from ..dag.errors import DecodeFailed, EncodeFailed, UnsupportedCodec
from ..dag.node import Node

logger = logging.getLogger(__name__)

Decoder = Callable[[bytes], tuple[Any, PBNode | None]]
Encoder = Callable[[Any, BinaryIO], None]


def _decode_dag_pb(data: bytes) -> tuple[Any, PBNode | None]:
    pb_node = decode_pbnode(data)
    return to_data_model(pb_node), pb_node


def _decode_raw(data: bytes) -> tuple[Any, PBNode | None]:
    return data, None


def _decode_dag_cbor(data: bytes) -> tuple[Any, PBNode | None]:
    return dag_cbor.decode(data), None


def _decode_cbor(data: bytes) -> tuple[Any, PBNode | None]:
    return cbor2.loads(data), None


def _dag_json_object_hook(obj: dict[str, Any]) -> Any:
    if set(obj) != {'/'}:
        return obj

    inner = obj['/']
    if isinstance(inner, str):
        return CID.decode(inner)
    if isinstance(inner, dict) and set(inner) == {'bytes'} and isinstance(inner['bytes'], str):
        encoded = inner['bytes']
        return base64.b64decode(encoded + '=' * (-len(encoded) % 4), validate=True)
    return obj


def _decode_dag_json(data: bytes) -> tuple[Any, PBNode | None]:
    return json.loads(data.decode('utf-8'), object_hook=_dag_json_object_hook), None


def _decode_json(data: bytes) -> tuple[Any, PBNode | None]:
    return json.loads(data.decode('utf-8')), None


_DECODERS: dict[str, Decoder] = {
    'dag-pb': _decode_dag_pb,
    'raw': _decode_raw,
    'dag-cbor': _decode_dag_cbor,
    'cbor': _decode_cbor,
    'dag-json': _decode_dag_json,
    'json': _decode_json,
}


def decode_block(cid: CID, data: bytes) -> Node:
    """Decode block bytes with the codec named by the CID.

    Raises:
        DecodeFailed: If the codec has no decoder or the bytes do not parse
    """
    codec = cid.codec.name
    decoder = _DECODERS.get(codec)
    if decoder is None:
        raise DecodeFailed(f"no decoder for codec {codec} ({cid})")

    try:
        value, pb_node = decoder(data)
    except DecodeFailed:
        raise
    except Exception as e:
        raise DecodeFailed(f"cannot decode {cid} as {codec}: {e}") from e

    logger.debug(f"Decoded {cid} ({codec}, {len(data)} bytes)")
    return Node(cid, data, value, pb_node)


def _dag_json_key_order(key: str) -> tuple[int, bytes]:
    # Length-first, then byte-wise: the canonical CBOR map order dag-cbor also uses
    encoded = key.encode('utf-8', 'surrogateescape')
    return len(encoded), encoded


def _to_json_value(value: Any, allow_links: bool, allow_bytes: bool, sort_keys: bool) -> Any:
    if isinstance(value, CID):
        if not allow_links:
            raise EncodeFailed(f"cannot encode link {value} with this codec")
        return {'/': str(value)}
    if isinstance(value, bytes):
        if not allow_bytes:
            raise EncodeFailed("cannot encode bytes with this codec")
        return {'/': {'bytes': base64.b64encode(value).decode('ascii').rstrip('=')}}
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise EncodeFailed(f"map key {key!r} is not a string")
        keys = sorted(value, key=_dag_json_key_order) if sort_keys else list(value)
        return {key: _to_json_value(value[key], allow_links, allow_bytes, sort_keys) for key in keys}
    if isinstance(value, list):
        return [_to_json_value(item, allow_links, allow_bytes, sort_keys) for item in value]
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    raise EncodeFailed(f"unsupported value type {type(value).__name__}")


def _write_json(value: Any, stream: BinaryIO):
    """Write compact JSON, keeping the key order of the value."""
    try:
        encoded = json.dumps(value, separators=(',', ':'), ensure_ascii=False, allow_nan=False).encode('utf-8')
    except ValueError as e:
        raise EncodeFailed(str(e)) from e
    stream.write(encoded)


def _encode_dag_json(value: Any, stream: BinaryIO):
    _write_json(_to_json_value(value, allow_links=True, allow_bytes=True, sort_keys=True), stream)


def _encode_json(value: Any, stream: BinaryIO):
    _write_json(_to_json_value(value, allow_links=False, allow_bytes=False, sort_keys=False), stream)


def _reject_links(value: Any):
    if isinstance(value, CID):
        raise EncodeFailed(f"cannot encode link {value} with this codec")
    if isinstance(value, dict):
        for item in value.values():
            _reject_links(item)
    elif isinstance(value, list):
        for item in value:
            _reject_links(item)


def _encode_dag_cbor(value: Any, stream: BinaryIO):
    try:
        encoded = dag_cbor.encode(value)
    except (TypeError, ValueError) as e:
        raise EncodeFailed(f"cannot encode as dag-cbor: {e}") from e
    stream.write(encoded)


def _encode_cbor(value: Any, stream: BinaryIO):
    """Plain CBOR keeps map keys in the order of the value."""
    _reject_links(value)
    try:
        encoded = cbor2.dumps(value)
    except cbor2.CBOREncodeError as e:
        raise EncodeFailed(f"cannot encode as cbor: {e}") from e
    stream.write(encoded)


def _encode_raw(value: Any, stream: BinaryIO):
    if not isinstance(value, bytes):
        raise EncodeFailed(f"raw codec can only encode bytes, not {type(value).__name__}")
    stream.write(value)


def _encode_dag_pb(value: Any, stream: BinaryIO):
    encode_pbnode(from_data_model(value), stream)


_ENCODERS: dict[str, Encoder] = {
    'dag-pb': _encode_dag_pb,
    'raw': _encode_raw,
    'dag-cbor': _encode_dag_cbor,
    'cbor': _encode_cbor,
    'dag-json': _encode_dag_json,
    'json': _encode_json,
}


def lookup_encoder(codec: str) -> Encoder:
    """Find the encoder registered for a multicodec name.

    Raises:
        UnsupportedCodec: If no encoder is registered under that name
    """
    encoder = _ENCODERS.get(codec)
    if encoder is None:
        raise UnsupportedCodec(codec)
    return encoder


def registered_codecs() -> list[str]:
    return sorted(_ENCODERS)
