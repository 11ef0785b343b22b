"""Wire format: length-prefixed requests and tagged, little-endian responses.

A request payload is a 32-bit argument count followed by each argument as
a 32-bit length and its bytes. A response is one tagged value; arrays hold
further tagged values.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Iterable, List, Tuple, Union

MAX_MSG = 4096
MAX_ARGS = 1024

_U32 = struct.Struct("<I")
_I64 = struct.Struct("<q")
_F64 = struct.Struct("<d")
_ERR_HEAD = struct.Struct("<iI")

Data = Union[bytes, bytearray, memoryview, str]


class SerType(IntEnum):
    """Type tag of a serialized response value."""

    NIL = 0
    ERR = 1
    STR = 2
    INT = 3
    DBL = 4
    ARR = 5


class ErrorCode(IntEnum):
    """Error codes carried by error responses."""

    UNKNOWN = 1
    TOO_BIG = 2
    TYPE = 3
    ARG = 4


class ProtocolError(ValueError):
    """Raised for malformed requests or responses."""


@dataclass(frozen=True)
class ErrorReply:
    """A decoded error response."""

    code: int
    msg: str


def _as_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def parse_request(payload: Data) -> List[bytes]:
    """Split a request payload into its arguments."""
    data = _as_bytes(payload)
    size = len(data)
    if size < 4:
        raise ProtocolError("request too short")
    (count,) = _U32.unpack_from(data, 0)
    if count > MAX_ARGS:
        raise ProtocolError("too many arguments")
    pos = 4
    args: List[bytes] = []
    for _ in range(count):
        if pos + 4 > size:
            raise ProtocolError("truncated argument length")
        (length,) = _U32.unpack_from(data, pos)
        end = pos + 4 + length
        if end > size:
            raise ProtocolError("truncated argument")
        args.append(data[pos + 4:end])
        pos = end
    if pos != size:
        raise ProtocolError("trailing garbage")
    return args


def encode_request(args: Iterable[Data]) -> bytes:
    """Build the request payload for ``args``."""
    items = [_as_bytes(arg) for arg in args]
    parts = [_U32.pack(len(items))]
    for item in items:
        parts.append(_U32.pack(len(item)))
        parts.append(item)
    return b"".join(parts)


def encode_nil() -> bytes:
    """Serialize a nil value."""
    return bytes([SerType.NIL])


def encode_str(data: Data) -> bytes:
    """Serialize a byte string."""
    raw = _as_bytes(data)
    return bytes([SerType.STR]) + _U32.pack(len(raw)) + raw


def encode_int(value: int) -> bytes:
    """Serialize a signed 64-bit integer."""
    return bytes([SerType.INT]) + _I64.pack(value)


def encode_dbl(value: float) -> bytes:
    """Serialize a double."""
    return bytes([SerType.DBL]) + _F64.pack(value)


def encode_err(code: int, msg: str) -> bytes:
    """Serialize an error with its code and message."""
    raw = msg.encode("utf-8")
    return bytes([SerType.ERR]) + _ERR_HEAD.pack(int(code), len(raw)) + raw


def encode_arr(n: int) -> bytes:
    """Serialize an array header announcing ``n`` following values."""
    return bytes([SerType.ARR]) + _U32.pack(n)


def _take(buf: bytes, pos: int, n: int) -> Tuple[bytes, int]:
    end = pos + n
    if end > len(buf):
        raise ProtocolError("truncated value")
    return buf[pos:end], end


def _decode_at(buf: bytes, pos: int) -> Tuple[Any, int]:
    tag_raw, pos = _take(buf, pos, 1)
    tag = tag_raw[0]
    if tag == SerType.NIL:
        return None, pos
    if tag == SerType.ERR:
        head, pos = _take(buf, pos, _ERR_HEAD.size)
        code, length = _ERR_HEAD.unpack(head)
        raw, pos = _take(buf, pos, length)
        try:
            code = ErrorCode(code)
        except ValueError:
            pass
        return ErrorReply(code, raw.decode("utf-8", errors="replace")), pos
    if tag == SerType.STR:
        head, pos = _take(buf, pos, 4)
        (length,) = _U32.unpack(head)
        return _take(buf, pos, length)
    if tag == SerType.INT:
        raw, pos = _take(buf, pos, 8)
        return _I64.unpack(raw)[0], pos
    if tag == SerType.DBL:
        raw, pos = _take(buf, pos, 8)
        return _F64.unpack(raw)[0], pos
    if tag == SerType.ARR:
        head, pos = _take(buf, pos, 4)
        (count,) = _U32.unpack(head)
        items = []
        for _ in range(count):
            item, pos = _decode_at(buf, pos)
            items.append(item)
        return items, pos
    raise ProtocolError(f"unknown type tag {tag}")


def decode(data: Data) -> Any:
    """Decode one response value.

    Nil becomes ``None``, strings ``bytes``, arrays lists and errors
    :class:`ErrorReply`.
    """
    buf = _as_bytes(data)
    value, pos = _decode_at(buf, 0)
    if pos != len(buf):
        raise ProtocolError("trailing data")
    return value