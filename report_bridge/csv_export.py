# report_bridge/csv_export.py
"""
CSV export of one report: a Category,Field,Value block followed by the
measurement cycle table.

    Category,Field,Value

    "Report Info","Generated","2024-03-01 10:15:00"
    ...
    "Results","Standard deviation (Density)","0.0003 g/cm³"

    MEASUREMENT CYCLES TABLE
    Cycle #,Blank (counts),...
    1,1024,2048,10.1234,-0.0012,1.2345,0.0003
"""

import csv
import logging
import os
from pathlib import Path
from typing import List, Tuple

from report_bridge.models import FieldTag, MeasuredValue, MeasurementCycle, ReportRecord, TimestampValue

logger = logging.getLogger(__name__)

CSV_HEADER = ("Category", "Field", "Value")
CYCLES_MARKER = "MEASUREMENT CYCLES TABLE"
CYCLE_COLUMNS = (
    "Cycle #",
    "Blank (counts)",
    "Sample (counts)",
    "Volume (cm³)",
    "Volume Deviation (cm³)",
    "Density (g/cm³)",
    "Density Deviation (g/cm³)",
)
GENERATED_FORMAT = "%Y-%m-%d %H:%M:%S"

CsvItem = Tuple[str, str, str]


def escape_value(value: str) -> str:
    """Line breaks become spaces, CRs vanish. Quote doubling is left to the csv writer."""
    if not value:
        return ""
    return value.replace("\n", " ").replace("\r", "")


def _field_text(record: ReportRecord, tag: FieldTag) -> str:
    value = record.field_value(tag)
    if isinstance(value, (MeasuredValue, TimestampValue)):
        return value.text
    if tag is FieldTag.REPORT_GENERATED:
        return value.strftime(GENERATED_FORMAT)
    return str(value)


def to_csv_items(record: ReportRecord) -> List[CsvItem]:
    """(category, field, value) per leaf field, in the fixed export order."""
    return [(tag.category, tag.label, _field_text(record, tag)) for tag in FieldTag]


def _cycle_row(cycle: MeasurementCycle) -> List[str]:
    return [
        str(cycle.cycle_number),
        str(cycle.blank_counts),
        str(cycle.sample_counts),
        f"{cycle.volume:.4f}",
        f"{cycle.volume_deviation:.4f}",
        f"{cycle.density:.4f}",
        f"{cycle.density_deviation:.4f}",
    ]


def write_csv(record: ReportRecord, output_path: str) -> None:
    """Write the file; OSError propagates."""
    with open(output_path, "w", encoding="utf-8-sig", newline="") as f:
        f.write(",".join(CSV_HEADER) + "\n")
        f.write("\n")

        quoted = csv.writer(f, quoting=csv.QUOTE_ALL, lineterminator="\n")
        for category, field, value in to_csv_items(record):
            quoted.writerow([category, field, escape_value(value)])

        if record.cycles:
            f.write("\n")
            f.write(CYCLES_MARKER + "\n")
            plain = csv.writer(f, lineterminator="\n")
            plain.writerow(CYCLE_COLUMNS)
            for cycle in record.cycles:
                plain.writerow(_cycle_row(cycle))


def export_csv(record: ReportRecord, output_path: str) -> bool:
    """
    Export channel entry point. Creates the output folder if needed.
    Returns False (and logs why) instead of raising.
    """
    if record is None:
        logger.warning("Cannot export CSV - report record is missing")
        return False
    if not output_path:
        logger.warning("Cannot export CSV - output path is empty")
        return False

    try:
        folder = os.path.dirname(output_path)
        if folder:
            Path(folder).mkdir(parents=True, exist_ok=True)
        write_csv(record, output_path)
    except OSError as e:
        logger.error("CSV export failed: %s", e)
        return False

    logger.info("CSV export completed: %s", output_path)
    return True


def read_csv(csv_path: str) -> Tuple[List[CsvItem], List[MeasurementCycle]]:
    """
    Parse a file written by write_csv back into its field triples and cycles.
    Raises OSError / ValueError for unreadable or malformed files.
    """
    items: List[CsvItem] = []
    cycles: List[MeasurementCycle] = []
    in_table = False

    with open(csv_path, "r", encoding="utf-8-sig", newline="") as f:
        for row in csv.reader(f):
            if not row or not any(cell.strip() for cell in row):
                continue
            if row[0] == CYCLES_MARKER:
                in_table = True
                continue
            if not in_table:
                if tuple(row) == CSV_HEADER:
                    continue
                if len(row) != 3:
                    raise ValueError(f"Expected 3 columns, got {len(row)}: {row}")
                items.append((row[0], row[1], row[2]))
                continue
            if tuple(row) == CYCLE_COLUMNS:
                continue
            if len(row) != len(CYCLE_COLUMNS):
                raise ValueError(f"Expected {len(CYCLE_COLUMNS)} cycle columns, got {len(row)}: {row}")
            cycles.append(MeasurementCycle(
                cycle_number=int(row[0]),
                blank_counts=int(row[1]),
                sample_counts=int(row[2]),
                volume=float(row[3]),
                volume_deviation=float(row[4]),
                density=float(row[5]),
                density_deviation=float(row[6]),
            ))

    logger.debug("Read %d fields and %d cycles from %s", len(items), len(cycles), csv_path)
    return items, cycles
