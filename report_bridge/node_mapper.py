# report_bridge/node_mapper.py
"""
ReportRecord → ordered OPC UA write-set.

Order: report info, instrument, sample, parameters, results (FieldTag
declaration order), then the cycle rows, then the array slot. A field is left
out when its node id is not configured or its value was not found.
"""

import logging
from datetime import datetime
from typing import List, Optional, Union

from report_bridge.cleaner import is_missing
from report_bridge.config import CYCLE_ROW_SLOTS, NodeMappings
from report_bridge.models import (
    FieldTag,
    MeasuredValue,
    ReportRecord,
    TimestampValue,
    WriteItem,
    format_number,
)

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Node ids that must be set for the downstream consumer to get a usable import
REQUIRED_MAPPINGS = (
    FieldTag.STARTED_TIME,
    FieldTag.COMPLETED_TIME,
    FieldTag.SAMPLE_MASS,
    FieldTag.ABSOLUTE_DENSITY,
)


def scalar_value(value: Union[str, datetime, MeasuredValue, TimestampValue]) -> Optional[str]:
    """
    String to write for one leaf field, or None when there is nothing to write.
    Derived numbers/dates win over the printed text; the text is the fallback.
    """
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, MeasuredValue):
        if not value.found:
            return None
        return format_number(value.value) if value.value is not None else value.text
    if isinstance(value, TimestampValue):
        if not value.found:
            return None
        return value.value.strftime(TIMESTAMP_FORMAT) if value.value is not None else value.text
    if value is None or is_missing(str(value)):
        return None
    return str(value)


class NodeMapper:
    def __init__(self, mappings: NodeMappings, max_cycles: int = CYCLE_ROW_SLOTS):
        if mappings is None:
            raise ValueError("mappings is required")
        self.mappings = mappings
        self.max_cycles = max(0, max_cycles)

    def node_id(self, tag: FieldTag) -> str:
        return self.mappings.get(tag)

    def cycle_row_node_id(self, row: int) -> Optional[str]:
        """Node id of cycle row slot `row` (1-based); None when the slot is not configured."""
        if row < 1 or row > len(self.mappings.cycle_rows):
            return None
        return self.mappings.cycle_rows[row - 1] or None

    def missing_required(self) -> List[str]:
        missing = [tag.key for tag in REQUIRED_MAPPINGS if not self.node_id(tag)]
        if not self.cycle_row_node_id(1):
            missing.append("cycle_rows[0]")
        if not self.mappings.data_import_array:
            missing.append("data_import_array")
        return missing

    def validate_mappings(self) -> bool:
        """Advisory pre-flight check; mapping and writing go ahead regardless."""
        return not self.missing_required()

    def map_report(self, record: ReportRecord) -> List[WriteItem]:
        if record is None:
            raise ValueError("record is required")

        items: List[WriteItem] = []
        for tag in FieldTag:
            node_id = self.node_id(tag)
            if not node_id:
                continue
            value = scalar_value(record.field_value(tag))
            if value is None:
                continue
            items.append(WriteItem(node_id, value, tag.description))

        items.extend(self.map_cycles(record))
        logger.debug("Mapped %d write items", len(items))
        return items

    def map_cycles(self, record: ReportRecord) -> List[WriteItem]:
        items: List[WriteItem] = []
        for row, cycle in enumerate(record.cycles[:self.max_cycles], 1):
            node_id = self.cycle_row_node_id(row)
            if node_id:
                items.append(WriteItem(node_id, cycle.as_row_string(), f"Cycle Row {row}"))

        # typed copy of the first cycle for consumers that read a Double[] node
        if record.cycles and self.mappings.data_import_array:
            items.append(WriteItem(self.mappings.data_import_array,
                                   record.cycles[0].as_array(), "Data Import Array"))
        return items
