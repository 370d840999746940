# report_bridge/errors.py
"""
Errors allowed to abort a run. Everything else is turned into a result value
at the component that owns it.
"""


class ReportBridgeError(Exception):
    """Base class for run-aborting failures."""


class ExtractionError(ReportBridgeError):
    """PDF missing, not a PDF, or unreadable. Nothing is exported."""


class ConfigurationError(ReportBridgeError):
    """Settings file exists but cannot be read or parsed."""
