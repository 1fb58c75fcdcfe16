#!/usr/bin/env python3
"""
Recovery Session - fetch one missing record over a dedicated connection

State machine, run once per missing sequence:

    OPEN -> REQUESTED -> RECEIVING -> COMPLETE
      |         |            |
      +---------+------------+-----> ABANDONED

- OPEN:      open a fresh connection (never reused)
- REQUESTED: send [0x02, seq & 0xFF]
- RECEIVING: collect exactly 17 bytes, retrying partial reads
- COMPLETE:  decode and store under the decoded sequence
- ABANDONED: connect/send failure, timeout or early close; store untouched

The resend request can only address sequences 0..255. Larger sequences
are still requested with the truncated byte, and flagged.

If the server answers with a different sequence than requested, the
record is filed under the sequence it carries and the result is flagged.

Each step returns a value instead of raising; the connection is closed
on every exit path.
"""

import socket
import logging
from contextlib import closing
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from .frame_decoder import FRAME_SIZE, RESEND_ONE, RESEND_SEQUENCE_MAX, Record, decode_frame
from .record_store import RecordStore
from .transport import ConnectionFactory

logger = logging.getLogger(__name__)


class RecoveryState(Enum):
    """Recovery session states"""
    OPEN = "open"
    REQUESTED = "requested"
    RECEIVING = "receiving"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class AbandonReason(Enum):
    """Why a session ended without a record"""
    CONNECT_FAILED = "connect_failed"
    SEND_FAILED = "send_failed"
    TIMED_OUT = "timed_out"
    CLOSED_EARLY = "closed_early"
    RECEIVE_FAILED = "receive_failed"


@dataclass
class RecoveryResult:
    """Outcome of one recovery session"""
    requested: int
    state: RecoveryState
    record: Optional[Record] = None
    reason: Optional[AbandonReason] = None
    bytes_received: int = 0
    out_of_range: bool = False
    mismatch: bool = False
    error: Optional[str] = None

    @property
    def recovered(self) -> bool:
        return self.state == RecoveryState.COMPLETE


def build_resend_request(sequence: int) -> bytes:
    """Resend request: message type then the sequence as one unsigned byte."""
    return bytes((RESEND_ONE, sequence & 0xFF))


class RecoverySession:
    """
    One-shot resend exchange for a single missing sequence.

    Example:
        session = RecoverySession(3, connect=factory, store=store)
        result = session.run()
        if result.recovered:
            ...
    """

    def __init__(self, sequence: int, connect: ConnectionFactory, store: RecordStore):
        """
        Args:
            sequence: Missing sequence to request
            connect: Zero-argument factory returning a connected socket
            store: Record Store to update on success
        """
        self.sequence = sequence
        self.connect = connect
        self.store = store
        self.state = RecoveryState.OPEN
        self.result: Optional[RecoveryResult] = None

    def run(self) -> RecoveryResult:
        """Run the exchange to a terminal state."""
        if self.result is not None:
            return self.result

        logger.info(f"Requesting resend for sequence {self.sequence}")
        out_of_range = not 0 <= self.sequence <= RESEND_SEQUENCE_MAX
        if out_of_range:
            logger.warning(
                f"Sequence {self.sequence} is outside the resend range "
                f"0-{RESEND_SEQUENCE_MAX}; request will carry {self.sequence & 0xFF}"
            )

        try:
            sock = self.connect()
        except OSError as e:
            logger.error(f"Resend connection failed for seq {self.sequence}: {e}")
            return self._abandon(AbandonReason.CONNECT_FAILED, error=str(e),
                                 out_of_range=out_of_range)

        with closing(sock):
            error = self._send_request(sock)
            if error is not None:
                logger.error(f"Error sending resend request for seq {self.sequence}: {error}")
                return self._abandon(AbandonReason.SEND_FAILED, error=error,
                                     out_of_range=out_of_range)

            frame, received, reason, error = self._receive_frame(sock)

        logger.debug(f"Closed resend connection for seq {self.sequence}")

        if frame is None:
            return self._abandon(reason, bytes_received=received, error=error,
                                 out_of_range=out_of_range)

        return self._complete(frame, out_of_range)

    def _send_request(self, sock: socket.socket) -> Optional[str]:
        self.state = RecoveryState.REQUESTED
        try:
            sock.sendall(build_resend_request(self.sequence))
        except OSError as e:
            return str(e)
        return None

    def _receive_frame(self, sock: socket.socket) -> Tuple[
            Optional[bytes], int, Optional[AbandonReason], Optional[str]]:
        """
        Read until exactly one frame is collected.

        Returns:
            (frame, bytes_received, abandon_reason, error) where frame is None
            on failure
        """
        self.state = RecoveryState.RECEIVING
        buffer = bytearray()

        while len(buffer) < FRAME_SIZE:
            try:
                chunk = sock.recv(FRAME_SIZE - len(buffer))
            except socket.timeout:
                logger.warning(
                    f"Receive timeout while getting resent record for seq {self.sequence} "
                    f"({len(buffer)}/{FRAME_SIZE} bytes)"
                )
                return None, len(buffer), AbandonReason.TIMED_OUT, None
            except OSError as e:
                logger.error(f"Error receiving resent record for seq {self.sequence}: {e}")
                return None, len(buffer), AbandonReason.RECEIVE_FAILED, str(e)

            if not chunk:
                logger.warning(
                    f"Server closed connection early for seq {self.sequence}: "
                    f"expected {FRAME_SIZE} bytes, got {len(buffer)}"
                )
                return None, len(buffer), AbandonReason.CLOSED_EARLY, None

            buffer.extend(chunk)

        return bytes(buffer), len(buffer), None, None

    def _complete(self, frame: bytes, out_of_range: bool) -> RecoveryResult:
        record = decode_frame(frame)
        mismatch = record.sequence != self.sequence
        if mismatch:
            logger.warning(
                f"Requested seq {self.sequence} but received record has seq "
                f"{record.sequence}; storing under {record.sequence}"
            )

        self.store.put(record)
        self.state = RecoveryState.COMPLETE
        logger.info(f"Recovered sequence {record.sequence}")

        self.result = RecoveryResult(
            requested=self.sequence,
            state=self.state,
            record=record,
            bytes_received=FRAME_SIZE,
            out_of_range=out_of_range,
            mismatch=mismatch,
        )
        return self.result

    def _abandon(self, reason: AbandonReason, bytes_received: int = 0,
                 error: Optional[str] = None, out_of_range: bool = False) -> RecoveryResult:
        self.state = RecoveryState.ABANDONED
        logger.warning(f"Abandoned sequence {self.sequence} ({reason.value})")
        self.result = RecoveryResult(
            requested=self.sequence,
            state=self.state,
            reason=reason,
            bytes_received=bytes_received,
            out_of_range=out_of_range,
            error=error,
        )
        return self.result


def recover_all(missing: Iterable[int], connect: ConnectionFactory,
                store: RecordStore) -> List[RecoveryResult]:
    """
    Run one recovery session per missing sequence, strictly in ascending order.

    Returns:
        Results in the order the sessions ran
    """
    results = []
    for seq in sorted(missing):
        results.append(RecoverySession(seq, connect, store).run())
    return results
