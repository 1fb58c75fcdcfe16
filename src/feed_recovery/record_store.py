"""
Record Store - ordered sequence -> Record mapping

Iteration is always ascending by sequence regardless of insertion order.
Inserting an existing sequence overwrites it (last write wins).
"""

import bisect
import logging
from typing import Dict, Iterator, List, Optional

from .frame_decoder import Record

logger = logging.getLogger(__name__)


class RecordStore:
    """
    Ordered map of records keyed by sequence number.

    Example:
        store = RecordStore()
        store.put(record)
        for record in store:
            ...  # ascending by sequence
    """

    def __init__(self):
        self._records: Dict[int, Record] = {}
        self._keys: List[int] = []  # sorted
        self.overwrites = 0

    def put(self, record: Record) -> bool:
        """
        Insert or overwrite a record under its own sequence number.

        Returns:
            True if the sequence was new, False if an existing entry was replaced
        """
        seq = record.sequence
        if seq in self._records:
            self._records[seq] = record
            self.overwrites += 1
            logger.debug(f"Overwrote sequence {seq}")
            return False

        self._records[seq] = record
        bisect.insort(self._keys, seq)
        return True

    def get(self, sequence: int) -> Optional[Record]:
        return self._records.get(sequence)

    @property
    def max_sequence(self) -> int:
        """Greatest sequence present, 0 when empty"""
        if not self._keys:
            return 0
        return self._keys[-1]

    def sequences(self) -> List[int]:
        return list(self._keys)

    def records(self) -> List[Record]:
        return [self._records[seq] for seq in self._keys]

    def __iter__(self) -> Iterator[Record]:
        return iter(self.records())

    def __contains__(self, sequence: object) -> bool:
        return sequence in self._records

    def __len__(self) -> int:
        return len(self._records)
