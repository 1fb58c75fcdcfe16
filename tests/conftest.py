"""
Shared fixtures: record builders, scripted fake sockets and an in-process
feed server speaking the stream/resend protocol.
"""

import sys
import socket
import socketserver
import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add src to path for development
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from feed_recovery.frame_decoder import Record, encode_frame


def make_record(sequence: int, symbol: bytes = b'MSFT', side: bytes = b'B',
                quantity: int = 100, price: int = 250) -> Record:
    return Record(symbol=symbol, side=side, quantity=quantity, price=price, sequence=sequence)


def make_frame(sequence: int, **kwargs) -> bytes:
    return encode_frame(make_record(sequence, **kwargs))


class FakeSocket:
    """
    Socket stand-in with scripted recv results.

    Each script entry is either bytes to return or an exception to raise.
    An exhausted script behaves like a closed peer.
    """

    def __init__(self, script: Optional[List] = None, send_error: Optional[Exception] = None):
        self.script = list(script or [])
        self.send_error = send_error
        self.sent = bytearray()
        self.recv_sizes: List[int] = []
        self.closed = False

    def sendall(self, data: bytes):
        if self.send_error is not None:
            raise self.send_error
        self.sent.extend(data)

    def recv(self, size: int) -> bytes:
        self.recv_sizes.append(size)
        if not self.script:
            return b''
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


# Resend reply that never arrives: the server holds the connection open
HANG = object()


class _FeedHandler(socketserver.BaseRequestHandler):
    def handle(self):
        feed = self.server.feed
        request = self.request.recv(1)

        if request == b'\x01':
            feed.stream_requests += 1
            data = feed.stream_data
            for i in range(0, len(data), feed.chunk_size):
                self.request.sendall(data[i:i + feed.chunk_size])
            if feed.idle_after_stream:
                feed.release.wait(feed.idle_seconds)

        elif request == b'\x02':
            seq_byte = self.request.recv(1)
            seq = seq_byte[0] if seq_byte else None
            with feed.lock:
                feed.resend_requests.append(seq)
            reply = feed.resend.get(seq)
            if reply is HANG:
                feed.release.wait(feed.idle_seconds)
            elif reply:
                self.request.sendall(reply)


class _FeedTCPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class FeedServer:
    """Threaded TCP server emulating the market-data feed"""

    def __init__(self, stream_data: bytes = b'', resend: Optional[Dict] = None,
                 idle_after_stream: bool = False, chunk_size: int = 1024,
                 idle_seconds: float = 5.0):
        self.stream_data = stream_data
        self.resend = resend or {}
        self.idle_after_stream = idle_after_stream
        self.chunk_size = chunk_size
        self.idle_seconds = idle_seconds
        self.stream_requests = 0
        self.resend_requests: List[Optional[int]] = []
        self.lock = threading.Lock()
        self.release = threading.Event()
        self._server = None
        self._thread = None

    @property
    def port(self) -> int:
        return self._server.server_address[1]

    def start(self):
        self._server = _FeedTCPServer(('127.0.0.1', 0), _FeedHandler)
        self._server.feed = self
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self):
        self.release.set()
        self._server.shutdown()
        self._server.server_close()
        self._thread.join(timeout=2)


@pytest.fixture
def feed_server():
    servers = []

    def start(**kwargs) -> FeedServer:
        server = FeedServer(**kwargs)
        server.start()
        servers.append(server)
        return server

    yield start

    for server in servers:
        server.stop()


@pytest.fixture
def unused_port() -> int:
    """A local port with nothing listening on it"""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(('127.0.0.1', 0))
    port = sock.getsockname()[1]
    sock.close()
    return port
