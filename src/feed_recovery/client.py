#!/usr/bin/env python3
"""
Feed Recovery Client

Runs one complete recovery pass:

    1. Connect and send the stream-all request
    2. Reassemble records until the stream closes, idles or errors
    3. Find gaps in [1, max]
    4. Recover each gap over its own connection, in ascending order
    5. Hand the finished store to the output writer

Only a failed initial connection (or request) is fatal here. Everything
after that is handled per connection or per sequence.
"""

import time
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import ClientConfig
from .frame_decoder import STREAM_ALL
from .gap_analyzer import GapReport, analyze
from .output_formatter import write_output
from .record_store import RecordStore
from .recovery_session import RecoveryResult, recover_all
from .stream_reassembler import StreamReader, StreamResult
from .transport import ConnectionFactory, connection_factory

logger = logging.getLogger(__name__)


class TransportSetupError(Exception):
    """The initial stream connection could not be set up"""


@dataclass
class RunMetrics:
    """Counters for one run"""
    records_streamed: int = 0
    stream_outcome: Optional[str] = None
    max_sequence: int = 0
    gaps_found: int = 0
    recovered: int = 0
    abandoned: int = 0
    mismatches: int = 0
    out_of_range_requests: int = 0
    final_records: int = 0
    overwrites: int = 0
    run_start_time: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'records_streamed': self.records_streamed,
            'stream_outcome': self.stream_outcome,
            'max_sequence': self.max_sequence,
            'gaps_found': self.gaps_found,
            'recovered': self.recovered,
            'abandoned': self.abandoned,
            'mismatches': self.mismatches,
            'out_of_range_requests': self.out_of_range_requests,
            'final_records': self.final_records,
            'overwrites': self.overwrites,
            'elapsed_seconds': time.time() - self.run_start_time,
        }


class FeedRecoveryClient:
    """
    Streams the feed, repairs gaps and writes the result.

    Example:
        client = FeedRecoveryClient(ClientConfig(host='127.0.0.1', port=3000))
        store = client.run()
        client.write(store)
    """

    def __init__(self, config: ClientConfig, connect: Optional[ConnectionFactory] = None):
        """
        Args:
            config: Client configuration
            connect: Connection factory override (defaults to TCP from config)
        """
        self.config = config
        self.connect = connect or connection_factory(
            config.host, config.port, config.timeout_sec)
        self.metrics = RunMetrics()
        self.stream_result: Optional[StreamResult] = None
        self.gap_report: Optional[GapReport] = None
        self.recovery_results: List[RecoveryResult] = []

    def stream(self, store: RecordStore) -> StreamResult:
        """
        Stream all records into the store.

        Raises:
            TransportSetupError: connect or stream request failed
        """
        logger.info(f"Connecting to {self.config.host}:{self.config.port} for the initial stream")
        try:
            sock = self.connect()
        except OSError as e:
            raise TransportSetupError(f"Connection failed: {e}") from e

        with sock:
            try:
                sock.sendall(bytes((STREAM_ALL,)))
            except OSError as e:
                raise TransportSetupError(f"Error sending stream request: {e}") from e
            logger.info("Sent stream request, receiving data stream")

            reader = StreamReader(sock, chunk_size=self.config.chunk_size)
            for record in reader:
                store.put(record)
            result = reader.result

        logger.info(
            f"Stream phase finished ({result.outcome.value}): "
            f"{result.records_decoded} records, {len(store)} unique sequences"
        )
        self.stream_result = result
        self.metrics.records_streamed = result.records_decoded
        self.metrics.stream_outcome = result.outcome.value
        return result

    def recover(self, store: RecordStore) -> List[RecoveryResult]:
        """Find gaps and run one recovery session per gap."""
        report = analyze(store)
        self.gap_report = report
        self.metrics.max_sequence = report.max_sequence
        self.metrics.gaps_found = len(report.missing)

        if not report.has_gaps:
            return []

        results = recover_all(report.missing, self.connect, store)
        self.recovery_results = results

        self.metrics.recovered = sum(1 for r in results if r.recovered)
        self.metrics.abandoned = len(results) - self.metrics.recovered
        self.metrics.mismatches = sum(1 for r in results if r.mismatch)
        self.metrics.out_of_range_requests = sum(1 for r in results if r.out_of_range)

        logger.info(
            f"Recovery finished: {self.metrics.recovered} recovered, "
            f"{self.metrics.abandoned} abandoned, {len(store)} records total"
        )
        return results

    def run(self) -> RecordStore:
        """Stream and recover; returns the finished store."""
        store = RecordStore()
        self.stream(store)
        self.recover(store)
        self.metrics.final_records = len(store)
        self.metrics.overwrites = store.overwrites
        return store

    def write(self, store: RecordStore):
        return write_output(store, self.config.output_path)
