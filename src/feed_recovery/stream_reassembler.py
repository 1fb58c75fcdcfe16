#!/usr/bin/env python3
"""
Stream Reassembler - fixed-size records from a chunked byte stream

TCP delivers bytes in arbitrary chunks, so a record may be split anywhere,
even mid-field. The reassembler keeps a residual buffer, appends each
chunk and decodes every complete 17-byte window from the front.

The feed has no end-of-stream marker. Reading stops on one of three
transport signals, reported as an explicit StreamEnd value:
- CLOSED:    peer closed the connection (normal completion)
- TIMED_OUT: idle-receive timeout elapsed (soft completion)
- ERRORED:   any other socket error
A consumer that stops iterating early gets STOPPED instead.
Records decoded so far are kept in every case; a trailing fragment
shorter than one frame is discarded.
"""

import socket
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Optional

from .frame_decoder import FRAME_SIZE, Record, decode_frame

logger = logging.getLogger(__name__)


class StreamEnd(Enum):
    """Why the streaming phase stopped"""
    CLOSED = "closed"
    TIMED_OUT = "timed_out"
    ERRORED = "errored"
    STOPPED = "stopped"     # consumer closed the reader before the transport ended


@dataclass
class StreamResult:
    """Outcome of one streaming phase"""
    outcome: StreamEnd
    records_decoded: int
    bytes_received: int
    discarded_bytes: int = 0
    error: Optional[str] = None


class StreamReassembler:
    """
    Accumulates stream bytes and yields complete records in arrival order.

    Example:
        reassembler = StreamReassembler()
        for record in reassembler.feed(chunk):
            store.put(record)
    """

    def __init__(self, frame_size: int = FRAME_SIZE):
        self.frame_size = frame_size
        self._buffer = bytearray()

        # Statistics
        self.bytes_received = 0
        self.records_decoded = 0

    def feed(self, chunk: bytes) -> List[Record]:
        """
        Append a chunk and decode every complete frame now buffered.

        Args:
            chunk: Bytes as returned by one receive call (any length)

        Returns:
            Records completed by this chunk, in stream order
        """
        self._buffer.extend(chunk)
        self.bytes_received += len(chunk)

        records = []
        while len(self._buffer) >= self.frame_size:
            records.append(decode_frame(bytes(self._buffer[:self.frame_size])))
            del self._buffer[:self.frame_size]

        self.records_decoded += len(records)
        return records

    @property
    def pending(self) -> int:
        """Bytes buffered that do not yet form a full frame"""
        return len(self._buffer)

    def discard(self) -> int:
        """Drop any incomplete trailing fragment. Returns its length."""
        dropped = len(self._buffer)
        if dropped:
            logger.warning(f"Discarding incomplete trailing fragment ({dropped} bytes)")
        self._buffer.clear()
        return dropped

    def get_stats(self) -> dict:
        return {
            'bytes_received': self.bytes_received,
            'records_decoded': self.records_decoded,
            'pending_bytes': self.pending,
        }


class StreamReader:
    """
    Lazily reads records from a connected socket until the stream ends.

    Iterating yields records as they complete. Once iteration finishes,
    or the consumer stops early, `result` holds the StreamResult. The
    reader is single-use.
    """

    def __init__(self, sock: socket.socket, chunk_size: int = 1024,
                 reassembler: Optional[StreamReassembler] = None):
        self.sock = sock
        self.chunk_size = chunk_size
        self.reassembler = reassembler or StreamReassembler()
        self.result: Optional[StreamResult] = None
        self._consumed = False

    def __iter__(self) -> Iterator[Record]:
        if self._consumed:
            raise RuntimeError("StreamReader cannot be restarted")
        self._consumed = True
        return self._read()

    def _read(self) -> Iterator[Record]:
        # Stays STOPPED only if the consumer closes the generator mid-stream
        outcome = StreamEnd.STOPPED
        error = None

        try:
            while True:
                try:
                    chunk = self.sock.recv(self.chunk_size)
                except socket.timeout:
                    outcome = StreamEnd.TIMED_OUT
                    logger.warning("Receive timeout reached on data stream, proceeding with received data")
                    break
                except OSError as e:
                    outcome = StreamEnd.ERRORED
                    error = str(e)
                    logger.error(f"Non-timeout error while receiving data stream: {e}")
                    break

                if not chunk:
                    outcome = StreamEnd.CLOSED
                    logger.info("Server closed the stream connection")
                    break

                for record in self.reassembler.feed(chunk):
                    logger.debug(f"Received {record.describe()}")
                    yield record
        finally:
            if outcome == StreamEnd.STOPPED:
                logger.info("Stream reading stopped by consumer")
            discarded = self.reassembler.discard()
            self.result = StreamResult(
                outcome=outcome,
                records_decoded=self.reassembler.records_decoded,
                bytes_received=self.reassembler.bytes_received,
                discarded_bytes=discarded,
                error=error,
            )
