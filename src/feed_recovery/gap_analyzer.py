#!/usr/bin/env python3
"""
Gap detection over the Record Store.

A gap is any sequence in [1, max] with no record after streaming ends.
Sequence numbering starts at 1, so 0 and negatives are never missing.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from .frame_decoder import RESEND_SEQUENCE_MAX
from .record_store import RecordStore

logger = logging.getLogger(__name__)


@dataclass
class GapReport:
    """Result of one gap analysis pass"""
    max_sequence: int
    present: int
    missing: List[int] = field(default_factory=list)

    @property
    def has_gaps(self) -> bool:
        return bool(self.missing)

    @property
    def beyond_resend_range(self) -> int:
        """Missing sequences the one-byte resend request cannot address"""
        return sum(1 for seq in self.missing if seq > RESEND_SEQUENCE_MAX)


def find_missing(store: RecordStore) -> List[int]:
    """
    Find missing sequence numbers.

    Args:
        store: Record Store populated by the streaming phase

    Returns:
        Missing sequences in ascending order (empty if the store is empty)
    """
    return [seq for seq in range(1, store.max_sequence + 1) if seq not in store]


def analyze(store: RecordStore) -> GapReport:
    """Compute the missing set and log a summary."""
    report = GapReport(
        max_sequence=store.max_sequence,
        present=len(store),
        missing=find_missing(store),
    )

    logger.info(f"Highest sequence received: {report.max_sequence}")
    if report.has_gaps:
        logger.info(f"Identified {len(report.missing)} missing sequences")
        logger.debug(f"Missing sequences: {report.missing}")
        beyond = report.beyond_resend_range
        if beyond:
            logger.warning(
                f"{beyond} missing sequences exceed the resend range 0-{RESEND_SEQUENCE_MAX} "
                f"(highest {report.max_sequence}); their requests will be truncated"
            )
    else:
        logger.info("No gaps found")

    return report
