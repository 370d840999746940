# report_bridge/excel_export.py
"""
Formatted Excel workbook for one report (openpyxl).
Sheets: Report (Category / Field / Value), Measurement Cycles, Metadata.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from report_bridge.csv_export import CYCLE_COLUMNS, to_csv_items
from report_bridge.models import NOT_FOUND, FieldTag, MeasuredValue, ReportRecord

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# Formatting helpers
# ─────────────────────────────────────────────────────────────

_DARK_BLUE  = "1F3864"
_MID_BLUE   = "2E5FAA"
_LIGHT_GRAY = "F5F5F5"
_WHITE      = "FFFFFF"
_GREEN_BG   = "E2EFDA"
_GREEN_FG   = "375623"
_GRAY_FG    = "888888"


def _hdr_font():
    return Font(name="Arial", bold=True, color=_WHITE, size=10)

def _body_font(bold=False, color="000000", italic=False):
    return Font(name="Arial", bold=bold, color=color, size=10, italic=italic)

def _fill(hex_color):
    return PatternFill("solid", fgColor=hex_color)

def _thin_border():
    s = Side(style="thin", color="D0D0D0")
    return Border(top=s, bottom=s, left=s, right=s)

def _apply_header_row(ws, row: int, headers: list):
    for i, h in enumerate(headers, 1):
        c = ws.cell(row=row, column=i, value=h)
        c.font      = _hdr_font()
        c.fill      = _fill(_DARK_BLUE)
        c.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
        c.border    = _thin_border()
    ws.row_dimensions[row].height = 30

def _apply_data_row(ws, row: int, values: list, alt: bool = False):
    """Numbers stay numeric so the cycle table can be charted; everything else is text."""
    bg = _LIGHT_GRAY if alt else _WHITE
    for i, v in enumerate(values, 1):
        if v is None:
            v = ""
        elif not isinstance(v, (int, float)):
            v = str(v)
        c = ws.cell(row=row, column=i, value=v)
        c.font      = _body_font()
        c.fill      = _fill(bg)
        c.alignment = Alignment(horizontal="left", vertical="center", wrap_text=True)
        c.border    = _thin_border()

def _sheet_banner(ws, title: str, num_cols: int):
    ws.row_dimensions[1].height = 30
    ws.merge_cells(start_row=1, start_column=1, end_row=1, end_column=num_cols)
    c = ws.cell(row=1, column=1, value=title)
    c.font      = Font(name="Arial", bold=True, size=13, color=_WHITE)
    c.fill      = _fill(_MID_BLUE)
    c.alignment = Alignment(horizontal="center", vertical="center")

def _set_col_widths(ws, widths: list):
    for i, w in enumerate(widths, 1):
        ws.column_dimensions[get_column_letter(i)].width = w


# ─────────────────────────────────────────────────────────────
# Sheet writers
# ─────────────────────────────────────────────────────────────

def _write_report_sheet(wb: Workbook, record: ReportRecord):
    ws = wb.create_sheet("Report")
    ws.sheet_view.showGridLines = False
    _sheet_banner(ws, f"{record.report_info.report_type} — {record.report_info.source_file}", 4)
    _apply_header_row(ws, 2, ["Category", "Field", "Value", "Numeric"])

    for i, (tag, (category, field, text)) in enumerate(zip(FieldTag, to_csv_items(record))):
        r = 3 + i
        ws.row_dimensions[r].height = 20
        value = record.field_value(tag)
        number = value.value if isinstance(value, MeasuredValue) else None
        _apply_data_row(ws, r, [category, field, text, number], alt=i % 2 == 0)
        ws.cell(r, 2).font = _body_font(bold=True)
        if text == NOT_FOUND:
            ws.cell(r, 3).font = _body_font(italic=True, color=_GRAY_FG)
        elif category == "Results":
            ws.cell(r, 3).fill = _fill(_GREEN_BG)
            ws.cell(r, 3).font = _body_font(bold=True, color=_GREEN_FG)
    _set_col_widths(ws, [16, 30, 36, 14])
    ws.freeze_panes = "A3"


def _write_cycles_sheet(wb: Workbook, record: ReportRecord):
    ws = wb.create_sheet("Measurement Cycles")
    ws.sheet_view.showGridLines = False
    cols = list(CYCLE_COLUMNS)
    _sheet_banner(ws, "Measurement Cycles", len(cols))
    _apply_header_row(ws, 2, cols)
    if not record.cycles:
        c = ws.cell(row=3, column=1, value="No measurement cycles found in document")
        c.font = _body_font(italic=True, color=_GRAY_FG)
    else:
        for i, cycle in enumerate(record.cycles):
            r = 3 + i
            ws.row_dimensions[r].height = 18
            _apply_data_row(ws, r, [
                cycle.cycle_number, cycle.blank_counts, cycle.sample_counts,
                cycle.volume, cycle.volume_deviation, cycle.density, cycle.density_deviation,
            ], alt=i % 2 == 0)
            for col in range(4, 8):
                ws.cell(r, col).number_format = "0.0000"
    _set_col_widths(ws, [10, 14, 16, 14, 22, 16, 24])
    ws.freeze_panes = "A3"


def _write_metadata_sheet(wb: Workbook, record: ReportRecord):
    ws = wb.create_sheet("Metadata")
    ws.sheet_view.showGridLines = False
    _sheet_banner(ws, "Extraction Metadata", 2)
    _apply_header_row(ws, 2, ["Property", "Value"])
    found = sum(1 for _, _, text in to_csv_items(record) if text and text != NOT_FOUND)
    rows = [
        ("Source PDF",       record.report_info.source_file),
        ("Extraction Time",  record.report_info.generated.strftime("%Y-%m-%d %H:%M:%S")),
        ("Report Type",      record.report_info.report_type),
        ("Fields Found",     f"{found} / {len(FieldTag)}"),
        ("Cycle Rows",       str(len(record.cycles))),
        ("Text Length",      f"{len(record.full_text):,} chars"),
    ]
    for i, (k, v) in enumerate(rows):
        r = 3 + i
        ws.row_dimensions[r].height = 20
        _apply_data_row(ws, r, [k, v], alt=i % 2 == 0)
        ws.cell(r, 1).font = _body_font(bold=True)
    _set_col_widths(ws, [28, 50])


# ─────────────────────────────────────────────────────────────
# Save to Excel
# ─────────────────────────────────────────────────────────────

def excel_output_path(output_dir: str, pdf_path: str, now: Optional[datetime] = None) -> str:
    base      = Path(pdf_path).stem
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return os.path.join(output_dir, f"{base}_extracted_{timestamp}.xlsx")


def save_to_excel(record: ReportRecord, out_path: str) -> str:
    """Write the workbook; OSError propagates."""
    wb = Workbook()
    wb.remove(wb.active)  # remove default blank sheet

    _write_report_sheet(wb,   record)
    _write_cycles_sheet(wb,   record)
    _write_metadata_sheet(wb, record)

    folder = os.path.dirname(out_path)
    if folder:
        Path(folder).mkdir(parents=True, exist_ok=True)
    wb.save(out_path)
    logger.info("Excel saved: %s", out_path)
    return out_path


def export_excel(record: ReportRecord, out_path: str) -> bool:
    if record is None:
        logger.warning("Cannot export Excel - report record is missing")
        return False
    try:
        save_to_excel(record, out_path)
    except OSError as e:
        logger.error("Excel export failed: %s", e)
        return False
    return True
