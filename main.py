# main.py
"""
Envelope Density Report Bridge
PDF → rule extraction → CSV (+ Excel) → OPC UA server

    python main.py export report.pdf [--excel] [--no-opcua] [--settings appsettings.json]
    python main.py diagnose [--endpoint opc.tcp://host:49320]
    python main.py setup
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from typing import Any, Callable, List, Optional

from asyncua import Client

from report_bridge import __version__
from report_bridge.certificates import ensure_certificate_dirs, print_certificate_info
from report_bridge.config import AppSettings, load_settings, validate_config
from report_bridge.csv_export import export_csv
from report_bridge.diagnostics import diagnose_connection, print_common_solutions
from report_bridge.errors import ConfigurationError, ExtractionError
from report_bridge.excel_export import excel_output_path, export_excel
from report_bridge.models import ChannelResult, ReportRecord
from report_bridge.node_mapper import NodeMapper
from report_bridge.opcua_client import OpcSessionClient
from report_bridge.rule_extractor import extract_report

EXIT_OK = 0
EXIT_CHANNELS_FAILED = 1
EXIT_EXTRACTION_ERROR = 2
EXIT_CONFIG_ERROR = 3


# ─────────────────────────────────────────────────────────────
# Export channels
# ─────────────────────────────────────────────────────────────

def export_files(record: ReportRecord, settings: AppSettings, pdf_path: str,
                 excel: bool = False) -> List[ChannelResult]:
    app = settings.application
    results = []

    csv_path = os.path.join(app.output_dir, app.csv_file_name)
    ok = export_csv(record, csv_path)
    results.append(ChannelResult("CSV", ok, csv_path if ok else "CSV export failed", csv_path))

    if excel or app.excel_export:
        xlsx_path = excel_output_path(app.output_dir, pdf_path)
        ok = export_excel(record, xlsx_path)
        results.append(ChannelResult("Excel", ok, xlsx_path if ok else "Excel export failed", xlsx_path))
    return results


async def export_opcua(record: ReportRecord, settings: AppSettings,
                       client_factory: Callable[..., Any] = Client) -> ChannelResult:
    mapper = NodeMapper(settings.opcua.node_mappings, settings.application.max_measurement_cycles)
    client = OpcSessionClient(settings.opcua, certificate_dir=settings.application.certificate_dir,
                              client_factory=client_factory)

    async with client.session() as connected:
        if not connected:
            return ChannelResult("OPC UA", False, f"could not connect to {settings.opcua.endpoint_url}")
        batch = await client.write_report(record, mapper)

    if batch.error:
        return ChannelResult("OPC UA", False, batch.error, batch)
    message = f"{len(batch.succeeded)}/{len(batch.results)} values written"
    return ChannelResult("OPC UA", batch.success, message, batch)


# ─────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────

def _print_record_summary(record: ReportRecord) -> None:
    print(f"\n  ── Extracted ──")
    print(f"  Report type : {record.report_info.report_type}")
    print(f"  Instrument  : {record.instrument.name} (S/N: {record.instrument.serial_number})")
    print(f"  Sample      : {record.sample.record}")
    print(f"  Cycles      : {len(record.cycles)}")


async def run_export(pdf_path: str, settings: AppSettings, excel: bool = False,
                     use_opcua: bool = True,
                     client_factory: Callable[..., Any] = Client) -> int:
    print(f"\n{'═' * 72}")
    print(f"  Envelope Density Report Bridge  v{__version__}")
    print(f"  File     : {pdf_path}")
    print(f"  Endpoint : {settings.opcua.endpoint_url if use_opcua else 'OFF'}")
    print(f"  Time     : {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"{'═' * 72}\n")

    print("Step 1/3  Extracting report data (pypdf + rules)...")
    try:
        record = await asyncio.to_thread(extract_report, pdf_path)
    except ExtractionError as e:
        print(f"\n✗ ERROR: {e}")
        return EXIT_EXTRACTION_ERROR
    _print_record_summary(record)

    print("\nStep 2/3  Writing output files...")
    results = export_files(record, settings, pdf_path, excel=excel)

    if use_opcua:
        print("Step 3/3  Writing to OPC UA server...")
        results.append(await export_opcua(record, settings, client_factory))
    else:
        print("Step 3/3  OPC UA disabled")

    print(f"\n  ── Summary ──")
    print(f"  {'PDF Processing':<14}: ✓ Success")
    for r in results:
        mark = "✓ Success" if r.success else "✗ Failed"
        print(f"  {r.channel:<14}: {mark}  {r.message}")

    succeeded = any(r.success for r in results)
    print(f"\n{'═' * 72}")
    print(f"  {'✓ Done' if succeeded else '✗ FAILED'}")
    print(f"{'═' * 72}\n")
    return EXIT_OK if succeeded else EXIT_CHANNELS_FAILED


async def run_diagnose(settings: AppSettings, endpoint_url: str = None,
                       client_factory: Callable[..., Any] = Client) -> int:
    ok = await diagnose_connection(settings, endpoint_url, client_factory=client_factory)
    if not ok:
        print_common_solutions()
    return EXIT_OK if ok else EXIT_CHANNELS_FAILED


async def run_setup(settings: AppSettings,
                    client_factory: Callable[..., Any] = Client) -> int:
    print("OPC UA First-Time Setup")
    print("=======================\n")
    cert_dir = settings.application.certificate_dir
    print("Setting up certificate folders...")
    if not ensure_certificate_dirs(cert_dir):
        print("✗ Certificate setup failed!")
        print_certificate_info(cert_dir)
        return EXIT_CHANNELS_FAILED
    print_certificate_info(cert_dir)

    print("Testing connection...")
    if await diagnose_connection(settings, client_factory=client_factory):
        print("✓ Setup completed successfully!")
        return EXIT_OK
    print("⚠️  Setup completed but connection test failed.")
    print("This may be normal if the OPC UA server is not running.")
    return EXIT_CHANNELS_FAILED


# ─────────────────────────────────────────────────────────────
# CLI
# ─────────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--settings", help="settings JSON file (default: appsettings.json)")
    common.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    common.add_argument("--pause", action="store_true", help="wait for Enter before exiting")

    parser = argparse.ArgumentParser(
        description="Extract envelope density report PDFs to CSV/Excel and an OPC UA server")
    sub = parser.add_subparsers(dest="command", required=True)

    export = sub.add_parser("export", parents=[common], help="extract one report PDF and export it")
    export.add_argument("pdf", help="report PDF path")
    export.add_argument("--excel", action="store_true", help="also write a formatted .xlsx")
    export.add_argument("--no-opcua", action="store_true", help="skip the OPC UA write")

    diagnose = sub.add_parser("diagnose", parents=[common], help="step-by-step OPC UA connection check")
    diagnose.add_argument("--endpoint", help="endpoint to test instead of the configured one")

    sub.add_parser("setup", parents=[common], help="create certificate folders and test the connection")
    return parser


def run(args: argparse.Namespace, client_factory: Callable[..., Any] = Client) -> int:
    try:
        settings = load_settings(args.settings)
    except ConfigurationError as e:
        print(f"\n✗ CONFIGURATION ERROR: {e}")
        return EXIT_CONFIG_ERROR

    if args.command == "export":
        if not validate_config(settings, print_details=args.verbose):
            return EXIT_CONFIG_ERROR
        return asyncio.run(run_export(args.pdf, settings, excel=args.excel,
                                      use_opcua=not args.no_opcua, client_factory=client_factory))
    if args.command == "diagnose":
        return asyncio.run(run_diagnose(settings, args.endpoint, client_factory=client_factory))
    return asyncio.run(run_setup(settings, client_factory=client_factory))


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    if not args.verbose:
        logging.getLogger("asyncua").setLevel(logging.WARNING)

    try:
        return run(args)
    finally:
        if args.pause:
            try:
                input("\nPress Enter to exit...")
            except EOFError:
                # stdin closed (scheduled task, pipe): nothing to wait for
                pass


if __name__ == "__main__":
    sys.exit(main())
