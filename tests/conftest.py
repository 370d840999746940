import os
from types import SimpleNamespace

import pytest

from report_bridge.config import AppSettings
from report_bridge.rule_extractor import build_report

_ENV_VARS = (
    "OPCUA_ENDPOINT_URL",
    "OPCUA_USERNAME",
    "OPCUA_PASSWORD",
    "OPCUA_USE_SECURITY",
    "REPORT_BRIDGE_OUTPUT_DIR",
    "REPORT_BRIDGE_SETTINGS",
)

SAMPLE_REPORT_TEXT = """\
GeoPyc Multiple Reports (S/N: 1234)
Envelope Density Report
03/01/2024, 10:15
Instrument GeoPyc Serial number 5678 Version GeoPyc 1365 v2.03
Sample
Record SAMPLE-01 A Operator jdoe Submitter lab
Started Mar 1, 2024 9:05 AM Completed Mar 1, 2024 9:45 AM
Report time Mar 1, 2024 10:15 AM
Sample mass 12.3400 g Absolute density 2.5000 g/cm³
Chamber diameter 25.4 mm Preparation cycles 3 Measurement cycles 5
Blank data Yes Consolidation force 51.00 N
Conversion factor 0.1284 cm³/mm Zero depth 30.1234 mm
Average envelope volume 10.1234 cm³ Standard deviation 0.0012 cm³
Average envelope density 1.2345 g/cm³ Standard deviation 0.0003 g/cm³
Specific pore volume 0.4100 cm³/g Porosity 50.62 %
Percent sample volume 12.5 %
Cycle # Blank Sample Volume Deviation Density Deviation
1 1024 2048 10.1234 -0.0012 1.2345 0.0003
2 1025 2050 10.1300 0.0054 1.2338 -0.0004
3 1024 2047 10.1168 -0.0054 1.2352 0.0004
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep settings overrides (and anything a .env load sets) out of other tests."""
    for name in _ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


@pytest.fixture
def sample_text() -> str:
    return SAMPLE_REPORT_TEXT


@pytest.fixture
def record():
    return build_report(SAMPLE_REPORT_TEXT, "sample.pdf")


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    s = AppSettings()
    s.application.output_dir = str(tmp_path / "output")
    s.application.certificate_dir = str(tmp_path / "Certificates")
    return s


# ─────────────────────────────────────────────────────────────
# Fake asyncua client
# ─────────────────────────────────────────────────────────────

class FakeStatus:
    def __init__(self, good: bool = True, name: str = "Good"):
        self.good = good
        self.name = name

    def is_good(self) -> bool:
        return self.good


class FakeNode:
    def __init__(self, server, node_id):
        self.server = server
        self.nodeid = node_id

    async def read_data_value(self):
        if self.nodeid not in self.server.values:
            return SimpleNamespace(StatusCode=FakeStatus(False, "BadNodeIdUnknown"), Value=None)
        return SimpleNamespace(StatusCode=FakeStatus(),
                               Value=SimpleNamespace(Value=self.server.values[self.nodeid]))

    async def get_children(self):
        return [FakeNode(self.server, name) for name in self.server.children]

    async def read_display_name(self):
        return SimpleNamespace(Text=self.nodeid)

    async def read_node_class(self):
        return SimpleNamespace(name="Object")


class FakeClient:
    def __init__(self, server, url, timeout):
        self.server = server
        self.url = url
        self.timeout = timeout
        self.name = ""
        self.description = ""
        self.session_timeout = 0
        self.user = None
        self.password = None
        self.security_string = None
        self.connected = False
        self.nodes = SimpleNamespace(objects=FakeNode(server, "Objects"))

    def set_user(self, user):
        self.user = user

    def set_password(self, password):
        self.password = password

    async def set_security_string(self, string):
        self.security_string = string

    async def connect(self):
        if self.server.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.connected = True
        self.server.sessions_opened += 1

    async def disconnect(self):
        self.connected = False
        self.server.sessions_closed += 1

    def get_node(self, node_id):
        return FakeNode(self.server, node_id)

    async def write_values(self, nodes, values, raise_on_partial_error=True):
        if self.server.write_error:
            raise self.server.write_error
        self.server.write_calls += 1
        statuses = []
        for node, value in zip(nodes, values):
            if node.nodeid in self.server.bad_nodes:
                statuses.append(FakeStatus(False, "BadNodeIdUnknown"))
            else:
                self.server.values[node.nodeid] = value.Value.Value
                self.server.written.append((node.nodeid, value))
                statuses.append(FakeStatus())
        return statuses

    async def connect_and_get_server_endpoints(self):
        if self.server.fail_connect:
            raise ConnectionRefusedError("connection refused")
        return [SimpleNamespace(EndpointUrl=self.url,
                                SecurityPolicyUri="http://opcfoundation.org/UA/SecurityPolicy#None")]


class FakeServer:
    """Shared state behind every FakeClient the factory hands out."""

    def __init__(self):
        self.fail_connect = False
        self.write_error = None
        self.bad_nodes = set()
        self.values = {}
        self.written = []
        self.write_calls = 0
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.children = ["Server", "pdf_extractor"]
        self.clients = []

    def factory(self, url, timeout=4):
        client = FakeClient(self, url, timeout)
        self.clients.append(client)
        return client


@pytest.fixture
def opc_server() -> FakeServer:
    return FakeServer()


@pytest.fixture
def write_settings_file(tmp_path):
    def _write(text: str) -> str:
        path = tmp_path / "appsettings.json"
        path.write_text(text, encoding="utf-8")
        return os.fspath(path)
    return _write
