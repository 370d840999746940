"""
report_bridge — envelope-density PDF report → OPC UA / CSV export.
PDF → pypdf text → regex rules + cycle rows → node write-set → asyncua session
"""

__version__ = "1.0.0"
