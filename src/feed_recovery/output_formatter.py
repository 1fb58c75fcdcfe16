"""
JSON output for the finished Record Store

Renders records ascending by sequence as an array of objects:
    symbol, buysell_indicator, quantity, price, packetSequence
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Union

from .record_store import RecordStore

logger = logging.getLogger(__name__)


class OutputWriteError(Exception):
    """The output artifact could not be written"""


def format_records(store: RecordStore) -> List[Dict]:
    return [
        {
            'symbol': record.symbol_text,
            'buysell_indicator': record.side_text,
            'quantity': record.quantity,
            'price': record.price,
            'packetSequence': record.sequence,
        }
        for record in store
    ]


def render_json(store: RecordStore) -> str:
    return json.dumps(format_records(store), indent=4) + '\n'


def write_output(store: RecordStore, path: Union[str, Path]) -> Path:
    """
    Write the store as a JSON array.

    Args:
        store: Finished Record Store
        path: Output file path (parent directories are created)

    Returns:
        Path written

    Raises:
        OutputWriteError: the file could not be written
    """
    path = Path(path)
    content = render_json(store)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    except OSError as e:
        raise OutputWriteError(f"Couldn't write {path}: {e}") from e

    logger.info(f"Output written to {path} ({len(store)} records)")
    return path
