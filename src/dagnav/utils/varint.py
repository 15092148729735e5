"""Unsigned variable-length integer encoding utilities.

This module implements the unsigned LEB128 varints used by multiformats
(CIDs, multihashes) and by the CAR section framing, supporting values from
0 to 2^63-1.
"""
from typing import BinaryIO

MAX_VARINT_BYTES = 9


def encode_varint(value: int) -> bytes:
    """Encode an integer as an unsigned LEB128 varint.

    Each byte carries 7 bits of payload, least significant group first. The
    high bit of a byte is set when more bytes follow.

    Args:
        value: Non-negative integer to encode (max 2^63-1)

    Returns:
        Variable-length byte encoding

    Raises:
        ValueError: If value is negative or exceeds 2^63-1
    """
    if value < 0:
        raise ValueError(f"Cannot encode negative value: {value}")
    if value >= (1 << 63):
        raise ValueError(f"Value {value} exceeds maximum (2^63-1)")

    result = bytearray()
    while True:
        low = value & 0x7F
        value >>= 7
        if value:
            result.append(low | 0x80)
        else:
            result.append(low)
            return bytes(result)


def decode_varint(data: bytes, offset: int = 0) -> tuple[int, int]:
    """Decode an unsigned varint from bytes.

    Args:
        data: Byte array containing the varint
        offset: Starting position in the byte array

    Returns:
        Tuple of (decoded_value, bytes_consumed)

    Raises:
        ValueError: If data is invalid, truncated or not minimally encoded
    """
    if offset >= len(data):
        raise ValueError("Offset exceeds data length")

    value = 0
    shift = 0
    consumed = 0
    while True:
        if consumed >= MAX_VARINT_BYTES:
            raise ValueError(f"Varint longer than {MAX_VARINT_BYTES} bytes")
        if offset + consumed >= len(data):
            raise ValueError(f"Insufficient data: varint truncated after {consumed} bytes")

        byte = data[offset + consumed]
        consumed += 1
        value |= (byte & 0x7F) << shift
        shift += 7

        if not byte & 0x80:
            # A trailing zero group means the value had a shorter encoding
            if byte == 0 and consumed > 1:
                raise ValueError("Varint is not minimally encoded")
            return value, consumed


def read_varint(stream: BinaryIO) -> int | None:
    """Read an unsigned varint from a binary stream.

    Returns:
        The decoded value, or None if the stream is at end of file before the
        first byte

    Raises:
        ValueError: If the stream ends in the middle of a varint
    """
    buffer = bytearray()
    while True:
        byte = stream.read(1)
        if not byte:
            if buffer:
                raise ValueError(f"Insufficient data: varint truncated after {len(buffer)} bytes")
            return None

        buffer += byte
        if not byte[0] & 0x80 or len(buffer) >= MAX_VARINT_BYTES:
            value, _ = decode_varint(bytes(buffer))
            return value
