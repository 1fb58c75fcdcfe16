"""
Feed Recovery - gap-repairing client for a fixed-length binary market-data feed

Streams every available 17-byte record over TCP, finds sequence numbers
missing from [1, max], fetches each one through a per-record resend
request, and writes the complete ordered result as JSON.

Quick Start:
    from feed_recovery import ClientConfig, FeedRecoveryClient

    client = FeedRecoveryClient(ClientConfig(host='127.0.0.1', port=3000))
    store = client.run()
    client.write(store)
"""

__version__ = "1.0.0"

from .frame_decoder import Record, FRAME_SIZE, decode_frame, encode_frame
from .stream_reassembler import StreamReassembler, StreamReader, StreamEnd, StreamResult
from .record_store import RecordStore
from .gap_analyzer import GapReport, analyze, find_missing
from .recovery_session import (
    RecoverySession, RecoveryState, RecoveryResult, AbandonReason, recover_all
)
from .output_formatter import OutputWriteError, format_records, render_json, write_output
from .config import ClientConfig, ConfigError, load_config
from .client import FeedRecoveryClient, RunMetrics, TransportSetupError

__all__ = [
    # Wire format
    "Record",
    "FRAME_SIZE",
    "decode_frame",
    "encode_frame",
    # Streaming
    "StreamReassembler",
    "StreamReader",
    "StreamEnd",
    "StreamResult",
    # Store and gaps
    "RecordStore",
    "GapReport",
    "analyze",
    "find_missing",
    # Recovery
    "RecoverySession",
    "RecoveryState",
    "RecoveryResult",
    "AbandonReason",
    "recover_all",
    # Output
    "OutputWriteError",
    "format_records",
    "render_json",
    "write_output",
    # Client
    "ClientConfig",
    "ConfigError",
    "load_config",
    "FeedRecoveryClient",
    "RunMetrics",
    "TransportSetupError",
]
