# report_bridge/models.py
"""
Data model for one envelope-density report run.

A ReportRecord is built once per PDF and never mutated afterwards; the mapper,
the CSV writer and the Excel writer all read the same frozen instance.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

NOT_FOUND = "Not found"


class FieldTag(Enum):
    """Closed set of report leaf fields.

    Each member carries its CSV category, CSV field label, settings key and the
    description attached to the OPC UA write item.
    """

    REPORT_GENERATED         = ("Report Info", "Generated", "report_generated", "Report Generated")
    SOURCE_FILE              = ("Report Info", "Source File", "source_file", "Source File")
    REPORT_DATE              = ("Report Info", "Report Date", "report_date", "Report Date")
    SERIAL_NUMBER            = ("Report Info", "Serial Number", "serial_number", "Serial Number")
    REPORT_TYPE              = ("Report Info", "Report Type", "report_type", "Report Type")

    INSTRUMENT_NAME          = ("Instrument", "Instrument", "instrument_name", "Instrument Name")
    INSTRUMENT_SERIAL_NUMBER = ("Instrument", "Serial number", "instrument_serial_number", "Instrument Serial Number")
    INSTRUMENT_VERSION       = ("Instrument", "Version", "instrument_version", "Instrument Version")

    SAMPLE_RECORD            = ("Sample", "Record", "sample_record", "Sample Record")
    SAMPLE_OPERATOR          = ("Sample", "Operator", "sample_operator", "Sample Operator")
    SAMPLE_SUBMITTER         = ("Sample", "Submitter", "sample_submitter", "Sample Submitter")
    STARTED_TIME             = ("Sample", "Started", "started_time", "Started Time")
    COMPLETED_TIME           = ("Sample", "Completed", "completed_time", "Completed Time")
    REPORT_TIME              = ("Sample", "Report time", "report_time", "Report Time")
    SAMPLE_MASS              = ("Sample", "Sample mass", "sample_mass", "Sample Mass")
    ABSOLUTE_DENSITY         = ("Sample", "Absolute density", "absolute_density", "Absolute Density")

    CHAMBER_DIAMETER         = ("Parameters", "Chamber diameter", "chamber_diameter", "Chamber Diameter")
    PREPARATION_CYCLES       = ("Parameters", "Preparation cycles", "preparation_cycles", "Preparation Cycles")
    MEASUREMENT_CYCLES       = ("Parameters", "Measurement cycles", "measurement_cycles", "Measurement Cycles")
    BLANK_DATA               = ("Parameters", "Blank data", "blank_data", "Blank Data")
    CONSOLIDATION_FORCE      = ("Parameters", "Consolidation force", "consolidation_force", "Consolidation Force")
    CONVERSION_FACTOR        = ("Parameters", "Conversion factor", "conversion_factor", "Conversion Factor")
    ZERO_DEPTH               = ("Parameters", "Zero depth", "zero_depth", "Zero Depth")

    AVERAGE_ENVELOPE_VOLUME    = ("Results", "Average envelope volume", "average_envelope_volume", "Average Envelope Volume")
    AVERAGE_ENVELOPE_DENSITY   = ("Results", "Average envelope density", "average_envelope_density", "Average Envelope Density")
    SPECIFIC_PORE_VOLUME       = ("Results", "Specific pore volume", "specific_pore_volume", "Specific Pore Volume")
    POROSITY                   = ("Results", "Porosity", "porosity", "Porosity")
    PERCENT_SAMPLE_VOLUME      = ("Results", "Percent sample volume", "percent_sample_volume", "Percent Sample Volume")
    STANDARD_DEVIATION_VOLUME  = ("Results", "Standard deviation (Volume)", "standard_deviation_volume", "Standard Deviation Volume")
    STANDARD_DEVIATION_DENSITY = ("Results", "Standard deviation (Density)", "standard_deviation_density", "Standard Deviation Density")

    def __init__(self, category: str, label: str, key: str, description: str):
        self.category = category
        self.label = label
        self.key = key
        self.description = description

    @classmethod
    def from_key(cls, key: str) -> "FieldTag":
        for tag in cls:
            if tag.key == key:
                return tag
        raise ValueError(f"Unknown field key: {key!r}")


# ─────────────────────────────────────────────────────────────
# Dual text / derived value holders
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MeasuredValue:
    """Unit-suffixed text as printed in the report plus the number derived from it."""
    text: str = NOT_FOUND
    value: Optional[float] = None

    @property
    def found(self) -> bool:
        return bool(self.text) and self.text != NOT_FOUND


@dataclass(frozen=True)
class TimestampValue:
    text: str = NOT_FOUND
    value: Optional[datetime] = None

    @property
    def found(self) -> bool:
        return bool(self.text) and self.text != NOT_FOUND


# ─────────────────────────────────────────────────────────────
# Report sections
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ReportInfo:
    generated: datetime = field(default_factory=datetime.now)
    source_file: str = NOT_FOUND
    report_date: str = NOT_FOUND
    serial_number: str = NOT_FOUND
    report_type: str = NOT_FOUND


@dataclass(frozen=True)
class InstrumentInfo:
    name: str = NOT_FOUND
    serial_number: str = NOT_FOUND
    version: str = NOT_FOUND


@dataclass(frozen=True)
class SampleInfo:
    record: str = NOT_FOUND
    operator: str = NOT_FOUND
    submitter: str = NOT_FOUND
    started: TimestampValue = TimestampValue()
    completed: TimestampValue = TimestampValue()
    report_time: TimestampValue = TimestampValue()
    sample_mass: MeasuredValue = MeasuredValue()        # g
    absolute_density: MeasuredValue = MeasuredValue()   # g/cm³


@dataclass(frozen=True)
class MeasurementParameters:
    chamber_diameter: MeasuredValue = MeasuredValue()     # mm
    preparation_cycles: MeasuredValue = MeasuredValue()
    measurement_cycles: MeasuredValue = MeasuredValue()
    blank_data: str = NOT_FOUND
    consolidation_force: MeasuredValue = MeasuredValue()  # N
    conversion_factor: MeasuredValue = MeasuredValue()    # cm³/mm
    zero_depth: MeasuredValue = MeasuredValue()           # mm


@dataclass(frozen=True)
class MeasurementResults:
    average_envelope_volume: MeasuredValue = MeasuredValue()
    average_envelope_density: MeasuredValue = MeasuredValue()
    specific_pore_volume: MeasuredValue = MeasuredValue()
    porosity: MeasuredValue = MeasuredValue()
    percent_sample_volume: MeasuredValue = MeasuredValue()
    standard_deviation_volume: MeasuredValue = MeasuredValue()
    standard_deviation_density: MeasuredValue = MeasuredValue()


@dataclass(frozen=True)
class MeasurementCycle:
    cycle_number: int
    blank_counts: int
    sample_counts: int
    volume: float
    volume_deviation: float
    density: float
    density_deviation: float

    def as_row_string(self) -> str:
        """Comma-joined seven values, the format each cycle row node receives."""
        values = [self.cycle_number, self.blank_counts, self.sample_counts,
                  self.volume, self.volume_deviation, self.density, self.density_deviation]
        return ",".join(format_number(v) for v in values)

    def as_array(self) -> List[float]:
        """The six non-index values, for the typed array node."""
        return [float(self.blank_counts), float(self.sample_counts), self.volume,
                self.volume_deviation, self.density, self.density_deviation]


@dataclass(frozen=True)
class ReportRecord:
    report_info: ReportInfo = field(default_factory=ReportInfo)
    instrument: InstrumentInfo = InstrumentInfo()
    sample: SampleInfo = SampleInfo()
    parameters: MeasurementParameters = MeasurementParameters()
    results: MeasurementResults = MeasurementResults()
    cycles: Tuple[MeasurementCycle, ...] = ()
    full_text: str = ""

    def field_value(self, tag: FieldTag) -> Union[str, MeasuredValue, TimestampValue, datetime]:
        """Look up a leaf field by tag."""
        section, attr = _FIELD_LOCATIONS[tag]
        return getattr(getattr(self, section), attr)


_FIELD_LOCATIONS = {
    FieldTag.REPORT_GENERATED:           ("report_info", "generated"),
    FieldTag.SOURCE_FILE:                ("report_info", "source_file"),
    FieldTag.REPORT_DATE:                ("report_info", "report_date"),
    FieldTag.SERIAL_NUMBER:              ("report_info", "serial_number"),
    FieldTag.REPORT_TYPE:                ("report_info", "report_type"),
    FieldTag.INSTRUMENT_NAME:            ("instrument", "name"),
    FieldTag.INSTRUMENT_SERIAL_NUMBER:   ("instrument", "serial_number"),
    FieldTag.INSTRUMENT_VERSION:         ("instrument", "version"),
    FieldTag.SAMPLE_RECORD:              ("sample", "record"),
    FieldTag.SAMPLE_OPERATOR:            ("sample", "operator"),
    FieldTag.SAMPLE_SUBMITTER:           ("sample", "submitter"),
    FieldTag.STARTED_TIME:               ("sample", "started"),
    FieldTag.COMPLETED_TIME:             ("sample", "completed"),
    FieldTag.REPORT_TIME:                ("sample", "report_time"),
    FieldTag.SAMPLE_MASS:                ("sample", "sample_mass"),
    FieldTag.ABSOLUTE_DENSITY:           ("sample", "absolute_density"),
    FieldTag.CHAMBER_DIAMETER:           ("parameters", "chamber_diameter"),
    FieldTag.PREPARATION_CYCLES:         ("parameters", "preparation_cycles"),
    FieldTag.MEASUREMENT_CYCLES:         ("parameters", "measurement_cycles"),
    FieldTag.BLANK_DATA:                 ("parameters", "blank_data"),
    FieldTag.CONSOLIDATION_FORCE:        ("parameters", "consolidation_force"),
    FieldTag.CONVERSION_FACTOR:          ("parameters", "conversion_factor"),
    FieldTag.ZERO_DEPTH:                 ("parameters", "zero_depth"),
    FieldTag.AVERAGE_ENVELOPE_VOLUME:    ("results", "average_envelope_volume"),
    FieldTag.AVERAGE_ENVELOPE_DENSITY:   ("results", "average_envelope_density"),
    FieldTag.SPECIFIC_PORE_VOLUME:       ("results", "specific_pore_volume"),
    FieldTag.POROSITY:                   ("results", "porosity"),
    FieldTag.PERCENT_SAMPLE_VOLUME:      ("results", "percent_sample_volume"),
    FieldTag.STANDARD_DEVIATION_VOLUME:  ("results", "standard_deviation_volume"),
    FieldTag.STANDARD_DEVIATION_DENSITY: ("results", "standard_deviation_density"),
}


# ─────────────────────────────────────────────────────────────
# Export-side records
# ─────────────────────────────────────────────────────────────

WriteValue = Union[str, List[float]]


@dataclass(frozen=True)
class WriteItem:
    node_id: str
    value: WriteValue
    description: str = ""


@dataclass(frozen=True)
class WriteResult:
    item: WriteItem
    good: bool
    status: str = ""


@dataclass
class BatchWriteResult:
    results: List[WriteResult] = field(default_factory=list)
    error: str = ""

    @property
    def succeeded(self) -> List[WriteResult]:
        return [r for r in self.results if r.good]

    @property
    def failed(self) -> List[WriteResult]:
        return [r for r in self.results if not r.good]

    @property
    def success(self) -> bool:
        # An empty batch is a success; a call that raised never is.
        return not self.error and all(r.good for r in self.results)


@dataclass(frozen=True)
class ChannelResult:
    channel: str
    success: bool
    message: str = ""
    detail: Any = None


def format_number(value: Union[int, float]) -> str:
    """Shortest faithful string form: 12.34 -> '12.34', 3.0 -> '3'."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)
