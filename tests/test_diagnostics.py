import asyncio

import pytest

from report_bridge import diagnostics
from report_bridge.certificates import CERT_SUBDIRS, certificate_paths, ensure_certificate_dirs
from report_bridge.diagnostics import diagnose_connection, split_endpoint


@pytest.fixture
def reachable(monkeypatch):
    calls = []

    async def fake_tcp(endpoint_url, timeout=5.0):
        calls.append(endpoint_url)
        return True
    monkeypatch.setattr(diagnostics, "check_tcp", fake_tcp)
    return calls


def test_split_endpoint():
    assert split_endpoint("opc.tcp://localhost:49320") == ("localhost", 49320)
    assert split_endpoint("opc.tcp://10.0.0.5") == ("10.0.0.5", 4840)


def test_all_steps_pass(settings, opc_server, reachable, capsys):
    assert asyncio.run(diagnose_connection(settings, client_factory=opc_server.factory))
    out = capsys.readouterr().out
    assert "Network Test: ✅ PASS" in out
    assert "Endpoint Discovery: ✅ PASS" in out
    assert "Session Creation: ✅ PASS" in out
    assert "pdf_extractor (Object)" in out
    assert opc_server.sessions_closed == 1


def test_endpoint_override(settings, opc_server, reachable):
    asyncio.run(diagnose_connection(settings, "opc.tcp://other:4840", client_factory=opc_server.factory))
    assert reachable == ["opc.tcp://other:4840"]
    assert all(c.url == "opc.tcp://other:4840" for c in opc_server.clients)
    # the caller's settings are not modified
    assert settings.opcua.endpoint_url == "opc.tcp://localhost:49320"


def test_stops_at_first_failing_step(settings, opc_server, monkeypatch, capsys):
    async def unreachable(endpoint_url, timeout=5.0):
        return False
    monkeypatch.setattr(diagnostics, "check_tcp", unreachable)

    assert not asyncio.run(diagnose_connection(settings, client_factory=opc_server.factory))
    out = capsys.readouterr().out
    assert "Network connectivity failed. Check:" in out
    assert "Step 2" not in out
    assert opc_server.clients == []


def test_discovery_failure(settings, opc_server, reachable, capsys):
    opc_server.fail_connect = True
    assert not asyncio.run(diagnose_connection(settings, client_factory=opc_server.factory))
    out = capsys.readouterr().out
    assert "Endpoint Discovery: ❌ FAIL" in out
    assert "Step 3" not in out


def test_tcp_check_against_closed_port():
    # port 1 on localhost is not listening in any sane test environment
    assert not asyncio.run(diagnostics.check_tcp("opc.tcp://127.0.0.1:1", timeout=2.0))


def test_certificate_dirs(tmp_path):
    base = tmp_path / "Certificates"
    assert ensure_certificate_dirs(str(base))
    assert sorted(p.name for p in base.iterdir()) == sorted(CERT_SUBDIRS)
    # idempotent
    assert ensure_certificate_dirs(str(base))

    cert, key = certificate_paths(str(base))
    assert cert.parent == base / "Own"
    assert key.name == "client_key.pem"
