"""The key space and the commands that operate on it."""

from __future__ import annotations

import math
import re
import time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .avl import offset as avl_offset
from .hashtable import HMap, HNode, str_hash
from .heap import HeapItem, update as heap_update
from .protocol import (
    MAX_MSG,
    Data,
    ErrorCode,
    encode_arr,
    encode_dbl,
    encode_err,
    encode_int,
    encode_nil,
    encode_str,
)
from .zset import ZSet

LARGE_CONTAINER_SIZE = 10000
MAX_EXPIRE_WORK = 2000
INT64_MAX = 2**63 - 1
INT64_MIN = -(2**63)

_WS = " \t\n\v\f\r"
_DEC = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")
_HEX = re.compile(
    r"[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)(?:[pP][+-]?[0-9]+)?"
)
_INF = re.compile(r"[+-]?(?:inf|infinity)", re.IGNORECASE)
_INT = re.compile(r"[+-]?[0-9]+")


def _monotonic_usec() -> int:
    return time.monotonic_ns() // 1000


def _as_text(text: Data) -> str:
    if isinstance(text, str):
        return text
    return bytes(text).decode("latin-1")


def _as_bytes(data: Data) -> bytes:
    if isinstance(data, str):
        return data.encode("utf-8")
    return bytes(data)


def parse_float(text: Data) -> float:
    """Parse a whole string as a floating point number; NaN is rejected.

    Leading whitespace, hexadecimal and infinities are accepted, and the
    empty string reads as zero.
    """
    s = _as_text(text)
    if s == "":
        return 0.0
    body = s.lstrip(_WS)
    if _DEC.fullmatch(body) or _INF.fullmatch(body):
        return float(body)
    if _HEX.fullmatch(body):
        try:
            return float.fromhex(body)
        except OverflowError:
            return -math.inf if body.startswith("-") else math.inf
    raise ValueError(f"not a number: {s!r}")


def parse_int(text: Data) -> int:
    """Parse a whole string as a base-10 integer clamped to 64 bits.

    The empty string reads as zero.
    """
    s = _as_text(text)
    if s == "":
        return 0
    body = s.lstrip(_WS)
    if not _INT.fullmatch(body):
        raise ValueError(f"not an integer: {s!r}")
    return max(INT64_MIN, min(INT64_MAX, int(body)))


class Entry(HNode):
    """A key with either a string value or a sorted set, and an optional TTL."""

    def __init__(self, key: bytes, val: bytes = b"", zset: Optional[ZSet] = None) -> None:
        super().__init__(str_hash(key))
        self.key = key
        self.val = val
        self.zset = zset
        self.heap_idx: Optional[int] = None


def _entry_eq(lhs: HNode, rhs: HNode) -> bool:
    return lhs.hcode == rhs.hcode and lhs.key == rhs.key  # type: ignore[attr-defined]


def _same(lhs: HNode, rhs: HNode) -> bool:
    return lhs is rhs


class _CommandError(Exception):
    def __init__(self, code: ErrorCode, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


def _arg_float(text: bytes) -> float:
    try:
        return parse_float(text)
    except ValueError:
        raise _CommandError(ErrorCode.ARG, "expect fp number") from None


def _arg_int(text: bytes, msg: str) -> int:
    try:
        return parse_int(text)
    except ValueError:
        raise _CommandError(ErrorCode.ARG, msg) from None


class Database:
    """The key space; ``execute`` runs one command and returns its serialized reply."""

    def __init__(self, clock: Optional[Callable[[], int]] = None, pool: Any = None) -> None:
        self._db = HMap()
        self._heap: List[HeapItem] = []
        self._clock = clock or _monotonic_usec
        self._pool = pool
        self._handlers: Dict[Tuple[bytes, int], Callable[[List[bytes]], bytes]] = {
            (b"keys", 1): self._do_keys,
            (b"get", 2): self._do_get,
            (b"set", 3): self._do_set,
            (b"del", 2): self._do_del,
            (b"pexpire", 3): self._do_expire,
            (b"pttl", 2): self._do_ttl,
            (b"zadd", 4): self._do_zadd,
            (b"zrem", 3): self._do_zrem,
            (b"zscore", 3): self._do_zscore,
            (b"zquery", 6): self._do_zquery,
        }

    def execute(self, cmd: Sequence[Data]) -> bytes:
        """Run a command and return the serialized response."""
        args = [_as_bytes(arg) for arg in cmd]
        handler = self._handlers.get((args[0].lower(), len(args))) if args else None
        if handler is None:
            out = encode_err(ErrorCode.UNKNOWN, "Unknown cmd")
        else:
            try:
                out = handler(args)
            except _CommandError as exc:
                out = encode_err(exc.code, exc.msg)
        if 4 + len(out) > MAX_MSG:
            out = encode_err(ErrorCode.TOO_BIG, "response is too big")
        return out

    def expire_keys(self, now_us: Optional[int] = None) -> int:
        """Delete keys whose deadline is before ``now_us``; return how many."""
        if now_us is None:
            now_us = self._clock()
        expired = 0
        while self._heap and self._heap[0].val < now_us:
            ent = self._heap[0].ref
            self._db.pop(ent, _same)
            self._delete_entry(ent)
            expired += 1
            if expired > MAX_EXPIRE_WORK:
                break
        return expired

    def next_expiry(self) -> Optional[int]:
        """The earliest key deadline in microseconds, or ``None``."""
        return self._heap[0].val if self._heap else None

    def _lookup(self, key: bytes) -> Optional[Entry]:
        return self._db.lookup(Entry(key), _entry_eq)  # type: ignore[return-value]

    def _set_ttl(self, ent: Entry, ttl_ms: int) -> None:
        heap = self._heap
        if ttl_ms < 0:
            if ent.heap_idx is not None:
                pos = ent.heap_idx
                last = heap.pop()
                if pos < len(heap):
                    heap[pos] = last
                    heap_update(heap, pos)
                ent.heap_idx = None
            return
        pos = ent.heap_idx
        if pos is None:
            heap.append(HeapItem(ref=ent))
            pos = len(heap) - 1
        heap[pos].val = self._clock() + ttl_ms * 1000
        heap_update(heap, pos)

    def _delete_entry(self, ent: Entry) -> None:
        self._set_ttl(ent, -1)
        zset = ent.zset
        if zset is None:
            return
        if self._pool is not None and len(zset) > LARGE_CONTAINER_SIZE:
            self._pool.submit(zset.dispose)
        else:
            zset.dispose()

    def _find_zset(self, key: bytes) -> Optional[Entry]:
        ent = self._lookup(key)
        if ent is not None and ent.zset is None:
            raise _CommandError(ErrorCode.TYPE, "expect zset")
        return ent

    def _do_keys(self, args: List[bytes]) -> bytes:
        body = b"".join(encode_str(node.key) for node in self._db.nodes())  # type: ignore[attr-defined]
        return encode_arr(len(self._db)) + body

    def _do_get(self, args: List[bytes]) -> bytes:
        ent = self._lookup(args[1])
        if ent is None:
            return encode_nil()
        if ent.zset is not None:
            return encode_err(ErrorCode.TYPE, "expect string type")
        return encode_str(ent.val)

    def _do_set(self, args: List[bytes]) -> bytes:
        ent = self._lookup(args[1])
        if ent is None:
            self._db.insert(Entry(args[1], args[2]))
        elif ent.zset is not None:
            return encode_err(ErrorCode.TYPE, "expect string type")
        else:
            ent.val = args[2]
        return encode_nil()

    def _do_del(self, args: List[bytes]) -> bytes:
        ent = self._db.pop(Entry(args[1]), _entry_eq)
        if ent is not None:
            self._delete_entry(ent)  # type: ignore[arg-type]
        return encode_int(1 if ent is not None else 0)

    def _do_expire(self, args: List[bytes]) -> bytes:
        ttl_ms = _arg_int(args[2], "expect int64")
        ent = self._lookup(args[1])
        if ent is not None:
            self._set_ttl(ent, ttl_ms)
        return encode_int(1 if ent is not None else 0)

    def _do_ttl(self, args: List[bytes]) -> bytes:
        ent = self._lookup(args[1])
        if ent is None:
            return encode_int(-2)
        if ent.heap_idx is None:
            return encode_int(-1)
        expire_at = self._heap[ent.heap_idx].val
        now_us = self._clock()
        return encode_int((expire_at - now_us) // 1000 if expire_at > now_us else 0)

    def _do_zadd(self, args: List[bytes]) -> bytes:
        score = _arg_float(args[2])
        ent = self._lookup(args[1])
        if ent is None:
            ent = Entry(args[1], zset=ZSet())
            self._db.insert(ent)
        elif ent.zset is None:
            return encode_err(ErrorCode.TYPE, "expect zset")
        return encode_int(1 if ent.zset.add(args[3], score) else 0)

    def _do_zrem(self, args: List[bytes]) -> bytes:
        ent = self._find_zset(args[1])
        if ent is None:
            return encode_nil()
        return encode_int(1 if ent.zset.pop(args[2]) is not None else 0)

    def _do_zscore(self, args: List[bytes]) -> bytes:
        ent = self._find_zset(args[1])
        if ent is None:
            return encode_nil()
        node = ent.zset.lookup(args[2])
        return encode_dbl(node.score) if node is not None else encode_nil()

    def _do_zquery(self, args: List[bytes]) -> bytes:
        score = _arg_float(args[2])
        name = args[3]
        offset_by = _arg_int(args[4], "expect int")
        limit = _arg_int(args[5], "expect int")
        ent = self._find_zset(args[1])
        if ent is None or limit <= 0:
            return encode_arr(0)
        node = ent.zset.query(score, name, offset_by)
        parts: List[bytes] = []
        n = 0
        while node is not None and n < limit:
            parts.append(encode_str(node.name))
            parts.append(encode_dbl(node.score))
            node = avl_offset(node, 1)  # type: ignore[assignment]
            n += 2
        return encode_arr(n) + b"".join(parts)