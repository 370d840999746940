# report_bridge/rule_extractor.py
"""
Rule-based extraction for envelope-density (GeoPyc) report PDFs.
Full text comes from pdf_extractor; header fields are matched by an ordered
regex table against whitespace-normalised text, cycle rows by cycle_parser
against the raw text.
"""

import logging
import os
import re
from datetime import datetime
from typing import Dict, Iterable, NamedTuple, Optional

from report_bridge.cleaner import first_number, normalize_text, parse_report_datetime
from report_bridge.cycle_parser import parse_measurement_cycles
from report_bridge.models import (
    NOT_FOUND,
    FieldTag,
    InstrumentInfo,
    MeasuredValue,
    MeasurementParameters,
    MeasurementResults,
    ReportInfo,
    ReportRecord,
    SampleInfo,
    TimestampValue,
)
from report_bridge.pdf_extractor import extract_text_from_pdf

logger = logging.getLogger(__name__)


class FieldRule(NamedTuple):
    tag: FieldTag
    pattern: str

    @property
    def category(self) -> str:
        return self.tag.category

    @property
    def field(self) -> str:
        return self.tag.label


def _find(pattern: str, text: str, group: int = 1, flags: int = re.I) -> str:
    m = re.search(pattern, text, flags)
    return m.group(group).strip() if m else ""


_DATE = r'[A-Za-z]{3} \d{1,2}, \d{4} \d{1,2}:\d{2} [AP]M'
_LEGACY_DATE = r'[A-Za-z]{3}\s+\d{1,2},?\s+\d{4}\s+\d{1,2}:\d{2}\s*(?:AM|PM)?'


# ─────────────────────────────────────────────────────────────
# Rule table. Order matters: the first rule that matches a field wins
# ─────────────────────────────────────────────────────────────

FIELD_RULES = (
    # Report info
    FieldRule(FieldTag.REPORT_DATE,   r'(\d{2}/\d{2}/\d{4},\s*\d{1,2}:\d{2})'),
    FieldRule(FieldTag.SERIAL_NUMBER, r'Multiple Reports \((S/N:\s*\d+)\)'),
    FieldRule(FieldTag.REPORT_TYPE,   r'(Envelope Density Report)'),

    # Instrument
    FieldRule(FieldTag.INSTRUMENT_NAME,          r'Instrument (GeoPyc)'),
    FieldRule(FieldTag.INSTRUMENT_SERIAL_NUMBER, r'Serial number (\d+)'),
    FieldRule(FieldTag.INSTRUMENT_VERSION,       r'Version (GeoPyc \d+ v[\d.]+)'),

    # Sample
    FieldRule(FieldTag.SAMPLE_RECORD,    r'Record ([A-Z0-9\-\s]+?)(?=\s+Operator)'),
    FieldRule(FieldTag.SAMPLE_OPERATOR,  r'Operator (\w+)'),
    FieldRule(FieldTag.SAMPLE_SUBMITTER, r'Submitter (\w+)'),
    FieldRule(FieldTag.STARTED_TIME,     rf'Started ({_DATE})'),
    FieldRule(FieldTag.COMPLETED_TIME,   rf'Completed ({_DATE})'),
    FieldRule(FieldTag.REPORT_TIME,      rf'Report time ({_DATE})'),
    FieldRule(FieldTag.SAMPLE_MASS,      r'Sample mass ([\d.]+ g)'),
    FieldRule(FieldTag.ABSOLUTE_DENSITY, r'Absolute density ([\d.]+ g/cm.)'),

    # Parameters
    FieldRule(FieldTag.CHAMBER_DIAMETER,    r'Chamber diameter ([\d.]+ mm)'),
    FieldRule(FieldTag.PREPARATION_CYCLES,  r'Preparation cycles (\d+)'),
    FieldRule(FieldTag.MEASUREMENT_CYCLES,  r'Measurement cycles (\d+)'),
    FieldRule(FieldTag.BLANK_DATA,          r'Blank data (\w+)'),
    FieldRule(FieldTag.CONSOLIDATION_FORCE, r'Consolidation force ([\d.]+ N)'),
    FieldRule(FieldTag.CONVERSION_FACTOR,   r'Conversion factor ([\d.]+ cm./mm)'),
    FieldRule(FieldTag.ZERO_DEPTH,          r'Zero depth ([\d.]+ mm)'),

    # Results
    FieldRule(FieldTag.AVERAGE_ENVELOPE_VOLUME,  r'Average envelope volume ([\d.]+ cm.)'),
    FieldRule(FieldTag.AVERAGE_ENVELOPE_DENSITY, r'Average envelope density ([\d.]+ g/cm.)'),
    FieldRule(FieldTag.SPECIFIC_PORE_VOLUME,     r'Specific pore volume ([\d.]+ cm./g)'),
    FieldRule(FieldTag.POROSITY,                 r'Porosity ([\d.]+)\s*%'),
    FieldRule(FieldTag.PERCENT_SAMPLE_VOLUME,    r'Percent sample volume ([\d.]+)\s*%'),
    FieldRule(FieldTag.STANDARD_DEVIATION_VOLUME,
              r'Average envelope volume [\d.]+ cm. Standard deviation ([\d.]+ cm.)'),
    FieldRule(FieldTag.STANDARD_DEVIATION_DENSITY,
              r'Average envelope density [\d.]+ g/cm. Standard deviation ([\d.]+ g/cm.)'),

    # Older report layout: colon after the label, optional space before the unit.
    # Only consulted for fields the rules above did not fill.
    FieldRule(FieldTag.STARTED_TIME,     rf'Started[:\s]*({_LEGACY_DATE})'),
    FieldRule(FieldTag.COMPLETED_TIME,   rf'Completed[:\s]*({_LEGACY_DATE})'),
    FieldRule(FieldTag.SAMPLE_MASS,      r'Sample\s+mass[:\s]*(\d+(?:\.\d+)?\s*g)\b'),
    FieldRule(FieldTag.ABSOLUTE_DENSITY, r'Absolute\s+density[:\s]*(\d+(?:\.\d+)?\s*g/cm[³3])'),
    FieldRule(FieldTag.SERIAL_NUMBER,    r'\((S/N:\s*\d+)\)'),
    FieldRule(FieldTag.INSTRUMENT_NAME,  r'Instrument[:\s]+(\w+)'),
    FieldRule(FieldTag.REPORT_TYPE,      r'(\w+\s+Density\s+Report)'),
)


def extract_fields(clean_text: str, rules: Iterable[FieldRule] = FIELD_RULES) -> Dict[FieldTag, str]:
    """
    Apply the rules in order. A field keeps the first value found for it;
    later rules aimed at an already filled field are skipped, and a rule that
    does not match leaves its field absent from the result.
    """
    found: Dict[FieldTag, str] = {}
    for rule in rules:
        if rule.tag in found:
            continue
        value = _find(rule.pattern, clean_text)
        if value:
            found[rule.tag] = value
    return found


# ─────────────────────────────────────────────────────────────
# Record assembly
# ─────────────────────────────────────────────────────────────

# Filled from the run itself, not from the PDF text
_NON_TEXT_FIELDS = (FieldTag.REPORT_GENERATED, FieldTag.SOURCE_FILE)


def _text(found: Dict[FieldTag, str], tag: FieldTag) -> str:
    return found.get(tag, NOT_FOUND)


def _measured(found: Dict[FieldTag, str], tag: FieldTag) -> MeasuredValue:
    text = _text(found, tag)
    return MeasuredValue(text=text, value=first_number(text))


def _timestamp(found: Dict[FieldTag, str], tag: FieldTag) -> TimestampValue:
    text = _text(found, tag)
    return TimestampValue(text=text, value=parse_report_datetime(text))


def build_report(
    full_text: str,
    source_file: str,
    generated: Optional[datetime] = None,
    rules: Iterable[FieldRule] = FIELD_RULES,
) -> ReportRecord:
    """Build the complete record from already extracted PDF text."""
    clean = normalize_text(full_text)
    found = extract_fields(clean, rules)

    record = ReportRecord(
        report_info=ReportInfo(
            generated=generated or datetime.now(),
            source_file=source_file or NOT_FOUND,
            report_date=_text(found, FieldTag.REPORT_DATE),
            serial_number=_text(found, FieldTag.SERIAL_NUMBER),
            report_type=_text(found, FieldTag.REPORT_TYPE),
        ),
        instrument=InstrumentInfo(
            name=_text(found, FieldTag.INSTRUMENT_NAME),
            serial_number=_text(found, FieldTag.INSTRUMENT_SERIAL_NUMBER),
            version=_text(found, FieldTag.INSTRUMENT_VERSION),
        ),
        sample=SampleInfo(
            record=_text(found, FieldTag.SAMPLE_RECORD),
            operator=_text(found, FieldTag.SAMPLE_OPERATOR),
            submitter=_text(found, FieldTag.SAMPLE_SUBMITTER),
            started=_timestamp(found, FieldTag.STARTED_TIME),
            completed=_timestamp(found, FieldTag.COMPLETED_TIME),
            report_time=_timestamp(found, FieldTag.REPORT_TIME),
            sample_mass=_measured(found, FieldTag.SAMPLE_MASS),
            absolute_density=_measured(found, FieldTag.ABSOLUTE_DENSITY),
        ),
        parameters=MeasurementParameters(
            chamber_diameter=_measured(found, FieldTag.CHAMBER_DIAMETER),
            preparation_cycles=_measured(found, FieldTag.PREPARATION_CYCLES),
            measurement_cycles=_measured(found, FieldTag.MEASUREMENT_CYCLES),
            blank_data=_text(found, FieldTag.BLANK_DATA),
            consolidation_force=_measured(found, FieldTag.CONSOLIDATION_FORCE),
            conversion_factor=_measured(found, FieldTag.CONVERSION_FACTOR),
            zero_depth=_measured(found, FieldTag.ZERO_DEPTH),
        ),
        results=MeasurementResults(
            average_envelope_volume=_measured(found, FieldTag.AVERAGE_ENVELOPE_VOLUME),
            average_envelope_density=_measured(found, FieldTag.AVERAGE_ENVELOPE_DENSITY),
            specific_pore_volume=_measured(found, FieldTag.SPECIFIC_PORE_VOLUME),
            porosity=_measured(found, FieldTag.POROSITY),
            percent_sample_volume=_measured(found, FieldTag.PERCENT_SAMPLE_VOLUME),
            standard_deviation_volume=_measured(found, FieldTag.STANDARD_DEVIATION_VOLUME),
            standard_deviation_density=_measured(found, FieldTag.STANDARD_DEVIATION_DENSITY),
        ),
        cycles=tuple(parse_measurement_cycles(full_text)),
        full_text=full_text,
    )

    missing = [t.description for t in FieldTag if t not in found and t not in _NON_TEXT_FIELDS]
    logger.info("Extracted %d fields, %d cycle rows", len(found), len(record.cycles))
    if missing:
        logger.debug("Fields not found: %s", ", ".join(missing))
    return record


def extract_report(pdf_path: str, generated: Optional[datetime] = None) -> ReportRecord:
    """
    Args:
        pdf_path  : report PDF path
        generated : run timestamp stamped into ReportInfo (defaults to now)
    Raises ExtractionError when the PDF cannot be read.
    """
    full_text = extract_text_from_pdf(pdf_path)
    return build_report(full_text, os.path.basename(pdf_path), generated=generated)
