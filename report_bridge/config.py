# report_bridge/config.py
"""
Configuration for the report → OPC UA bridge.

Settings live in a JSON file (appsettings.json by default). When the file does
not exist the defaults are written to it on first run. Secrets and per-machine
values can also come from a .env file / the environment, which override the
JSON file:

    OPCUA_ENDPOINT_URL, OPCUA_USERNAME, OPCUA_PASSWORD, OPCUA_USE_SECURITY,
    REPORT_BRIDGE_OUTPUT_DIR, REPORT_BRIDGE_SETTINGS (settings file path)

Nothing here is global: load_settings() returns a value that is handed to each
component.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from report_bridge.errors import ConfigurationError
from report_bridge.models import FieldTag

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "appsettings.json"
CYCLE_ROW_SLOTS = 10

_PREFIX = "ns=2;s=pdf_extractor"

DEFAULT_NODE_IDS: Dict[FieldTag, str] = {
    FieldTag.REPORT_GENERATED:           f"{_PREFIX}.ReportInfo.generated",
    FieldTag.SOURCE_FILE:                f"{_PREFIX}.ReportInfo.source_file",
    FieldTag.REPORT_DATE:                f"{_PREFIX}.ReportInfo.report_date",
    FieldTag.SERIAL_NUMBER:              f"{_PREFIX}.ReportInfo.serial_number",
    FieldTag.REPORT_TYPE:                f"{_PREFIX}.ReportInfo.report_type",
    FieldTag.INSTRUMENT_NAME:            f"{_PREFIX}.Instrument.instrument_name",
    FieldTag.INSTRUMENT_SERIAL_NUMBER:   f"{_PREFIX}.Instrument.serial_number",
    FieldTag.INSTRUMENT_VERSION:         f"{_PREFIX}.Instrument.version",
    FieldTag.SAMPLE_RECORD:              f"{_PREFIX}.Sample.record",
    FieldTag.SAMPLE_OPERATOR:            f"{_PREFIX}.Sample.operator",
    FieldTag.SAMPLE_SUBMITTER:           f"{_PREFIX}.Sample.submitter",
    FieldTag.STARTED_TIME:               f"{_PREFIX}.Data_import.started",
    FieldTag.COMPLETED_TIME:             f"{_PREFIX}.Data_import.completed",
    FieldTag.REPORT_TIME:                f"{_PREFIX}.Sample.report_time",
    FieldTag.SAMPLE_MASS:                f"{_PREFIX}.Data_import.sample_mass",
    FieldTag.ABSOLUTE_DENSITY:           f"{_PREFIX}.Data_import.absolute_density",
    FieldTag.CHAMBER_DIAMETER:           f"{_PREFIX}.Parameters.chamber_diameter",
    FieldTag.PREPARATION_CYCLES:         f"{_PREFIX}.Parameters.preparation_cycles",
    FieldTag.MEASUREMENT_CYCLES:         f"{_PREFIX}.Parameters.measurement_cycles",
    FieldTag.BLANK_DATA:                 f"{_PREFIX}.Parameters.blank_data",
    FieldTag.CONSOLIDATION_FORCE:        f"{_PREFIX}.Parameters.consolidation_force",
    FieldTag.CONVERSION_FACTOR:          f"{_PREFIX}.Parameters.conversion_factor",
    FieldTag.ZERO_DEPTH:                 f"{_PREFIX}.Parameters.zero_depth",
    FieldTag.AVERAGE_ENVELOPE_VOLUME:    f"{_PREFIX}.Results.average_envelope_volume",
    FieldTag.AVERAGE_ENVELOPE_DENSITY:   f"{_PREFIX}.Results.average_envelope_density",
    FieldTag.SPECIFIC_PORE_VOLUME:       f"{_PREFIX}.Results.specific_pore_volume",
    FieldTag.POROSITY:                   f"{_PREFIX}.Results.porosity",
    FieldTag.PERCENT_SAMPLE_VOLUME:      f"{_PREFIX}.Results.percent_sample_volume",
    FieldTag.STANDARD_DEVIATION_VOLUME:  f"{_PREFIX}.Results.standard_deviation_volume",
    FieldTag.STANDARD_DEVIATION_DENSITY: f"{_PREFIX}.Results.standard_deviation_density",
}

DEFAULT_CYCLE_ROWS = [f"{_PREFIX}.Data_import.cycle_row{i}" for i in range(1, CYCLE_ROW_SLOTS + 1)]
DEFAULT_ARRAY_NODE = f"{_PREFIX}.Data_import.Data_import"


# ────────────────────────────────────────────────
# Settings values
# ────────────────────────────────────────────────

@dataclass
class NodeMappings:
    """Destination node id per field tag, plus the cycle row slots and the array slot."""
    fields: Dict[FieldTag, str] = field(default_factory=lambda: dict(DEFAULT_NODE_IDS))
    cycle_rows: List[str] = field(default_factory=lambda: list(DEFAULT_CYCLE_ROWS))
    data_import_array: str = DEFAULT_ARRAY_NODE
    unknown_keys: List[str] = field(default_factory=list)

    def get(self, tag: FieldTag) -> str:
        return self.fields.get(tag, "") or ""

    @classmethod
    def empty(cls) -> "NodeMappings":
        return cls(fields={tag: "" for tag in FieldTag}, cycle_rows=[""] * CYCLE_ROW_SLOTS,
                   data_import_array="")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeMappings":
        mappings = cls()
        for key, value in (data or {}).items():
            if key == "cycle_rows":
                rows = [str(v or "") for v in (value or [])]
                mappings.cycle_rows = rows + [""] * (CYCLE_ROW_SLOTS - len(rows))
            elif key == "data_import_array":
                mappings.data_import_array = str(value or "")
            else:
                try:
                    mappings.fields[FieldTag.from_key(key)] = str(value or "")
                except ValueError:
                    mappings.unknown_keys.append(key)
        return mappings

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {tag.key: self.get(tag) for tag in FieldTag}
        data["cycle_rows"] = list(self.cycle_rows)
        data["data_import_array"] = self.data_import_array
        return data


@dataclass
class OpcUaSettings:
    endpoint_url: str = "opc.tcp://localhost:49320"
    application_name: str = "PDF Data Extractor OPC UA Client"
    session_timeout_ms: int = 60000
    operation_timeout_ms: int = 15000
    auto_accept_untrusted_certificates: bool = True
    use_security: bool = False
    username: str = ""
    password: str = ""
    node_mappings: NodeMappings = field(default_factory=NodeMappings)

    @property
    def anonymous(self) -> bool:
        return not self.username


@dataclass
class ApplicationSettings:
    output_dir: str = "output"
    csv_file_name: str = "ExtractedData.csv"
    excel_export: bool = False
    max_measurement_cycles: int = CYCLE_ROW_SLOTS
    certificate_dir: str = "Certificates"


@dataclass
class AppSettings:
    opcua: OpcUaSettings = field(default_factory=OpcUaSettings)
    application: ApplicationSettings = field(default_factory=ApplicationSettings)
    source_path: Optional[Path] = None

    def to_dict(self) -> Dict[str, Any]:
        opc = self.opcua
        app = self.application
        return {
            "opcua": {
                "endpoint_url": opc.endpoint_url,
                "application_name": opc.application_name,
                "session_timeout_ms": opc.session_timeout_ms,
                "operation_timeout_ms": opc.operation_timeout_ms,
                "auto_accept_untrusted_certificates": opc.auto_accept_untrusted_certificates,
                "use_security": opc.use_security,
                "username": opc.username,
                "password": opc.password,
                "node_mappings": opc.node_mappings.to_dict(),
            },
            "application": {
                "output_dir": app.output_dir,
                "csv_file_name": app.csv_file_name,
                "excel_export": app.excel_export,
                "max_measurement_cycles": app.max_measurement_cycles,
                "certificate_dir": app.certificate_dir,
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        if not isinstance(data, dict):
            raise ConfigurationError("Settings file must contain a JSON object")
        opc_data = data.get("opcua", {}) or {}
        app_data = data.get("application", {}) or {}
        if not isinstance(opc_data, dict) or not isinstance(app_data, dict):
            raise ConfigurationError("'opcua' and 'application' must be JSON objects")

        defaults_opc = OpcUaSettings()
        defaults_app = ApplicationSettings()
        try:
            opcua = OpcUaSettings(
                endpoint_url=str(opc_data.get("endpoint_url", defaults_opc.endpoint_url)),
                application_name=str(opc_data.get("application_name", defaults_opc.application_name)),
                session_timeout_ms=int(opc_data.get("session_timeout_ms", defaults_opc.session_timeout_ms)),
                operation_timeout_ms=int(opc_data.get("operation_timeout_ms", defaults_opc.operation_timeout_ms)),
                auto_accept_untrusted_certificates=_as_bool(opc_data.get(
                    "auto_accept_untrusted_certificates", defaults_opc.auto_accept_untrusted_certificates),
                    "auto_accept_untrusted_certificates"),
                use_security=_as_bool(opc_data.get("use_security", defaults_opc.use_security), "use_security"),
                username=str(opc_data.get("username", "") or ""),
                password=str(opc_data.get("password", "") or ""),
                node_mappings=NodeMappings.from_dict(opc_data.get("node_mappings", {})),
            )
            application = ApplicationSettings(
                output_dir=str(app_data.get("output_dir", defaults_app.output_dir)),
                csv_file_name=str(app_data.get("csv_file_name", defaults_app.csv_file_name)),
                excel_export=_as_bool(app_data.get("excel_export", defaults_app.excel_export), "excel_export"),
                max_measurement_cycles=int(app_data.get("max_measurement_cycles",
                                                        defaults_app.max_measurement_cycles)),
                certificate_dir=str(app_data.get("certificate_dir", defaults_app.certificate_dir)),
            )
        except (TypeError, ValueError, AttributeError) as e:
            raise ConfigurationError(f"Invalid settings value: {e}") from e
        return cls(opcua=opcua, application=application)


# ────────────────────────────────────────────────
# Load / save
# ────────────────────────────────────────────────

_TRUE_WORDS = ("true", "1", "yes")
_FALSE_WORDS = ("false", "0", "no")


def _env_flag(value: str) -> bool:
    return value.lower() in _TRUE_WORDS


def _as_bool(value: Any, key: str) -> bool:
    """JSON booleans pass through; the usual true/false words are accepted as strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_WORDS + _FALSE_WORDS:
        return _env_flag(value.strip())
    raise ConfigurationError(f"Invalid settings value for '{key}': expected true/false, got {value!r}")


def _apply_env_overrides(settings: AppSettings) -> None:
    if os.getenv("OPCUA_ENDPOINT_URL"):
        settings.opcua.endpoint_url = os.environ["OPCUA_ENDPOINT_URL"]
    if os.getenv("OPCUA_USERNAME") is not None:
        settings.opcua.username = os.environ["OPCUA_USERNAME"]
    if os.getenv("OPCUA_PASSWORD") is not None:
        settings.opcua.password = os.environ["OPCUA_PASSWORD"]
    if os.getenv("OPCUA_USE_SECURITY"):
        settings.opcua.use_security = _env_flag(os.environ["OPCUA_USE_SECURITY"])
    if os.getenv("REPORT_BRIDGE_OUTPUT_DIR"):
        settings.application.output_dir = os.environ["REPORT_BRIDGE_OUTPUT_DIR"]


def save_settings(settings: AppSettings, path: Path) -> None:
    path = Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)


def load_settings(path: Optional[str] = None, env_file: Optional[str] = None) -> AppSettings:
    """
    Load settings from JSON (+ .env overrides).
    Missing file -> defaults, persisted to `path`. Unreadable file -> ConfigurationError.
    """
    env_path = Path(env_file) if env_file else Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(dotenv_path=env_path)

    settings_path = Path(path or os.getenv("REPORT_BRIDGE_SETTINGS") or DEFAULT_SETTINGS_FILE)

    if settings_path.exists():
        try:
            with open(settings_path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read settings file {settings_path}: {e}") from e
        settings = AppSettings.from_dict(data)
    else:
        settings = AppSettings()
        try:
            save_settings(settings, settings_path)
            logger.info("Settings file not found; defaults written to %s", settings_path)
        except OSError as e:
            logger.warning("Settings file not found and defaults could not be saved to %s: %s",
                           settings_path, e)

    settings.source_path = settings_path
    _apply_env_overrides(settings)
    return settings


# ────────────────────────────────────────────────
# Validation (called from main.py before a run)
# ────────────────────────────────────────────────

def validate_config(settings: AppSettings, print_details: bool = True) -> bool:
    """
    Check settings that would make a run fail or silently write nothing.
    Returns True if valid, False otherwise.
    """
    issues = []
    opc = settings.opcua
    app = settings.application

    if not opc.endpoint_url:
        issues.append("opcua.endpoint_url is missing")
    elif not opc.endpoint_url.startswith("opc.tcp://"):
        issues.append(f"opcua.endpoint_url must start with opc.tcp:// (got {opc.endpoint_url})")
    if opc.session_timeout_ms <= 0:
        issues.append("opcua.session_timeout_ms must be positive")
    if opc.operation_timeout_ms <= 0:
        issues.append("opcua.operation_timeout_ms must be positive")
    if opc.password and not opc.username:
        issues.append("opcua.password is set but opcua.username is empty")
    if app.max_measurement_cycles < 0:
        issues.append("application.max_measurement_cycles must not be negative")
    for key in opc.node_mappings.unknown_keys:
        issues.append(f"opcua.node_mappings.{key} is not a known field")

    if issues:
        print("⚠️  Configuration validation failed:")
        for issue in issues:
            print(f"  • {issue}")
        print(f"\nPlease check and update {settings.source_path or DEFAULT_SETTINGS_FILE}.")
        return False

    if print_details:
        print("Configuration validation passed.")
        print("Loaded settings (password hidden):")
        print(f"  • endpoint_url           = {opc.endpoint_url}")
        print(f"  • application_name       = {opc.application_name}")
        print(f"  • session_timeout_ms     = {opc.session_timeout_ms}")
        print(f"  • operation_timeout_ms   = {opc.operation_timeout_ms}")
        print(f"  • use_security           = {opc.use_security}")
        print(f"  • auth                   = {'anonymous' if opc.anonymous else 'user ' + opc.username}")
        print(f"  • output_dir             = {app.output_dir}")
        print(f"  • max_measurement_cycles = {app.max_measurement_cycles}")

    return True
