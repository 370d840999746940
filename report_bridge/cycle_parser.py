# report_bridge/cycle_parser.py
"""
Measurement cycle rows.

The cycle table header is rendered differently by different PDF producers,
so the table is not located by its header at all: every line of the raw text
that looks like a 7-number row becomes one cycle, in the order encountered.
"""

import logging
import re
from typing import List, Optional

from report_bridge.models import MeasurementCycle

logger = logging.getLogger(__name__)

# cycle#  blank  sample  volume  volume-dev  density  density-dev
_ROW_RE = re.compile(
    r'^(\d+)\s+([\d.]+)\s+([\d.]+)\s+([\d.-]+)\s+([\d.-]+)\s+([\d.-]+)\s+([\d.-]+)$'
)


def parse_cycle_line(line: str) -> Optional[MeasurementCycle]:
    """One line -> one cycle, or None when the line is not a (valid) cycle row."""
    m = _ROW_RE.match(line.strip())
    if not m:
        return None
    g = m.groups()
    try:
        return MeasurementCycle(
            cycle_number=int(g[0]),
            blank_counts=int(g[1]),
            sample_counts=int(g[2]),
            volume=float(g[3]),
            volume_deviation=float(g[4]),
            density=float(g[5]),
            density_deviation=float(g[6]),
        )
    except ValueError:
        # shape matched but a token is not a number, e.g. "1.2.3" or "10.24" as a count
        logger.debug("Skipping malformed cycle row: %r", line)
        return None


def parse_measurement_cycles(text: str) -> List[MeasurementCycle]:
    """All cycle rows of the raw (non-normalised) text, document order, no cap."""
    cycles: List[MeasurementCycle] = []
    for line in (text or "").split('\n'):
        cycle = parse_cycle_line(line)
        if cycle is not None:
            cycles.append(cycle)
    return cycles
