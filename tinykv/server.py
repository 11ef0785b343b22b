"""Single-threaded, non-blocking TCP server for the key-value store.

Requests and responses are framed by a 32-bit little-endian length. Idle
connections are dropped after a timeout and keys with a TTL are expired
from the same event loop.
"""

from __future__ import annotations

import argparse
import selectors
import socket
import struct
import sys
import time
from enum import Enum
from typing import Callable, Dict, Optional, Sequence

from .commands import Database
from .dlist import DList
from .protocol import MAX_MSG, ProtocolError, parse_request
from .thread_pool import ThreadPool

IDLE_TIMEOUT_MS = 5 * 1000
DEFAULT_PORT = 1234
NO_TIMER_MS = 10000
POLL_SLACK_US = 1000

_HEADER = struct.Struct("<I")


def _monotonic_usec() -> int:
    return time.monotonic_ns() // 1000


def _msg(text: str) -> None:
    print(text, file=sys.stderr)


class ConnState(Enum):
    """What a connection is waiting for."""

    REQ = 0
    RES = 1
    END = 2


class Connection(DList):
    """One client: its buffers, state and place in the idle list."""

    def __init__(
        self, db: Database, sock: Optional[socket.socket] = None, idle_start: int = 0
    ) -> None:
        super().__init__()
        self.db = db
        self.sock = sock
        self.idle_start = idle_start
        self.state = ConnState.REQ
        self.rbuf = bytearray()
        self.wbuf = bytearray()

    @property
    def fileno(self) -> int:
        return self.sock.fileno() if self.sock is not None else -1

    def feed(self, data: bytes) -> bytes:
        """Consume received bytes and run every complete request.

        The framed responses are appended to ``wbuf`` and also returned.
        Raises :class:`ProtocolError` (and marks the connection ended) on an
        oversized or malformed request.
        """
        self.rbuf += data
        produced = bytearray()
        while len(self.rbuf) >= 4:
            (length,) = _HEADER.unpack_from(self.rbuf, 0)
            if length > MAX_MSG:
                self.state = ConnState.END
                raise ProtocolError("too long")
            if 4 + length > len(self.rbuf):
                break
            try:
                cmd = parse_request(bytes(self.rbuf[4:4 + length]))
            except ProtocolError:
                self.state = ConnState.END
                raise ProtocolError("bad req") from None
            del self.rbuf[:4 + length]
            out = self.db.execute(cmd)
            frame = _HEADER.pack(len(out)) + out
            self.wbuf += frame
            produced += frame
        return bytes(produced)


class Server:
    """Listening socket plus the event loop that serves all connections."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DEFAULT_PORT,
        *,
        num_threads: int = 4,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._clock = clock or _monotonic_usec
        self.db = Database(clock=self._clock, pool=ThreadPool(num_threads))
        self.idle_list = DList()
        self.connections: Dict[int, Connection] = {}
        self._closed = False
        self._listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            self._listener.bind((host, port))
            self._listener.listen(socket.SOMAXCONN)
            self._listener.setblocking(False)
        except OSError:
            self._listener.close()
            raise
        self.address = self._listener.getsockname()
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._listener, selectors.EVENT_READ, None)

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close every connection and the listening socket."""
        if self._closed:
            return
        self._closed = True
        while not self.idle_list.is_empty():
            self._conn_done(self.idle_list.next)  # type: ignore[arg-type]
        try:
            self._selector.close()
        finally:
            self._listener.close()

    def next_timer_ms(self) -> int:
        """Milliseconds until the nearest idle or TTL deadline."""
        now_us = self._clock()
        deadlines = []
        if not self.idle_list.is_empty():
            first: Connection = self.idle_list.next  # type: ignore[assignment]
            deadlines.append(first.idle_start + IDLE_TIMEOUT_MS * 1000)
        expiry = self.db.next_expiry()
        if expiry is not None:
            deadlines.append(expiry)
        if not deadlines:
            return NO_TIMER_MS
        next_us = min(deadlines)
        if next_us <= now_us:
            return 0
        return (next_us - now_us) // 1000

    def process_timers(self) -> None:
        """Drop idle connections and expire keys whose time has come."""
        now_us = self._clock() + POLL_SLACK_US
        while not self.idle_list.is_empty():
            conn: Connection = self.idle_list.next  # type: ignore[assignment]
            if conn.idle_start + IDLE_TIMEOUT_MS * 1000 >= now_us:
                break
            print(f"removing idle connection: {conn.fileno}")
            self._conn_done(conn)
        self.db.expire_keys(now_us)

    def serve_forever(self) -> None:
        """Run the event loop until the server is closed."""
        while not self._closed:
            try:
                self._poll_once()
            except (OSError, ValueError, RuntimeError, KeyError):
                if self._closed:
                    break
                raise

    def _poll_once(self) -> None:
        events = self._selector.select(self.next_timer_ms() / 1000)
        listener_ready = False
        for key, _ in events:
            conn = key.data
            if conn is None:
                listener_ready = True
                continue
            if conn.state is ConnState.END:
                continue
            self._connection_io(conn)
            if conn.state is ConnState.END:
                self._conn_done(conn)
            else:
                self._watch(conn)
        self.process_timers()
        if listener_ready:
            self._accept()

    def _accept(self) -> None:
        try:
            sock, _ = self._listener.accept()
        except BlockingIOError:
            return
        except OSError:
            _msg("accept() error")
            return
        sock.setblocking(False)
        conn = Connection(self.db, sock, self._clock())
        self.idle_list.insert_before(conn)
        self.connections[sock.fileno()] = conn
        self._selector.register(sock, selectors.EVENT_READ, conn)

    def _watch(self, conn: Connection) -> None:
        events = selectors.EVENT_READ if conn.state is ConnState.REQ else selectors.EVENT_WRITE
        self._selector.modify(conn.sock, events, conn)

    def _connection_io(self, conn: Connection) -> None:
        conn.idle_start = self._clock()
        conn.detach()
        self.idle_list.insert_before(conn)
        if conn.state is ConnState.REQ:
            self._read(conn)
        elif conn.state is ConnState.RES:
            self._write(conn)

    def _read(self, conn: Connection) -> None:
        while conn.state is ConnState.REQ:
            try:
                data = conn.sock.recv(4 + MAX_MSG - len(conn.rbuf))
            except BlockingIOError:
                return
            except InterruptedError:
                continue
            except OSError:
                _msg("read() error")
                conn.state = ConnState.END
                return
            if not data:
                _msg("unexpected EOF" if conn.rbuf else "EOF")
                conn.state = ConnState.END
                return
            try:
                conn.feed(data)
            except ProtocolError as exc:
                _msg(str(exc))
                return
            if conn.wbuf:
                conn.state = ConnState.RES
                self._write(conn)

    def _write(self, conn: Connection) -> None:
        while conn.wbuf:
            try:
                sent = conn.sock.send(conn.wbuf)
            except BlockingIOError:
                return
            except InterruptedError:
                continue
            except OSError:
                _msg("write() error")
                conn.state = ConnState.END
                return
            del conn.wbuf[:sent]
        conn.state = ConnState.REQ

    def _conn_done(self, conn: Connection) -> None:
        conn.detach()
        conn.prev = conn.next = conn
        conn.state = ConnState.END
        sock = conn.sock
        if sock is None:
            return
        self.connections.pop(sock.fileno(), None)
        try:
            self._selector.unregister(sock)
        except (KeyError, ValueError, RuntimeError, OSError):
            pass
        sock.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Start the server and serve until interrupted."""
    parser = argparse.ArgumentParser(prog="tinykv", description="Run the key-value server.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--threads", type=int, default=4)
    args = parser.parse_args(argv)
    with Server(args.host, args.port, num_threads=args.threads) as server:
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":
    raise SystemExit(main())