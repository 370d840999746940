import asyncio

import pytest
from asyncua import ua

from report_bridge.config import NodeMappings, OpcUaSettings
from report_bridge.models import WriteItem
from report_bridge.node_mapper import NodeMapper
from report_bridge.opcua_client import OpcSessionClient, SessionState, encode_value


def _client(opc_server, tmp_path, **overrides):
    settings = OpcUaSettings(**overrides)
    return OpcSessionClient(settings, certificate_dir=str(tmp_path / "certs"),
                            client_factory=opc_server.factory)


def _items(n):
    return [WriteItem(f"ns=2;s=item{i}", f"value {i}", f"Item {i}") for i in range(1, n + 1)]


def test_connect_configures_session(opc_server, tmp_path):
    client = _client(opc_server, tmp_path, username="op", password="secret",
                     session_timeout_ms=30000, operation_timeout_ms=5000)

    assert asyncio.run(client.connect())
    assert client.state is SessionState.CONNECTED
    assert client.is_connected

    raw = opc_server.clients[0]
    assert raw.url == "opc.tcp://localhost:49320"
    assert raw.timeout == 5.0
    assert raw.session_timeout == 30000
    assert raw.name == "PDF Data Extractor OPC UA Client"
    assert (raw.user, raw.password) == ("op", "secret")
    assert raw.security_string is None


def test_anonymous_session_sets_no_user(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)
    asyncio.run(client.connect())
    assert opc_server.clients[0].user is None


def test_failed_connect_then_disconnect_then_reconnect(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        opc_server.fail_connect = True
        assert not await client.connect()
        assert client.state is SessionState.DISCONNECTED
        await client.disconnect()
        await client.disconnect()
        opc_server.fail_connect = False
        assert await client.connect()
        assert client.state is SessionState.CONNECTED
        await client.disconnect()
        assert client.state is SessionState.DISCONNECTED

    asyncio.run(scenario())
    assert opc_server.sessions_opened == 1
    assert opc_server.sessions_closed == 1


def test_security_without_client_certificate_fails_to_connect(opc_server, tmp_path):
    client = _client(opc_server, tmp_path, use_security=True)
    assert not asyncio.run(client.connect())
    assert client.state is SessionState.DISCONNECTED


def test_security_string_uses_certificate_folder(opc_server, tmp_path):
    own = tmp_path / "certs" / "Own"
    own.mkdir(parents=True)
    (own / "client_cert.der").write_bytes(b"cert")
    (own / "client_key.pem").write_bytes(b"key")

    client = _client(opc_server, tmp_path, use_security=True)
    assert asyncio.run(client.connect())
    assert opc_server.clients[0].security_string.startswith("Basic256Sha256,SignAndEncrypt,")


def test_partial_batch_failure(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)
    opc_server.bad_nodes = {"ns=2;s=item3"}

    async def scenario():
        async with client.session():
            return await client.write_batch(_items(5))

    batch = asyncio.run(scenario())
    assert not batch.success
    assert len(batch.succeeded) == 4
    assert [r.item.node_id for r in batch.failed] == ["ns=2;s=item3"]
    assert batch.failed[0].status == "BadNodeIdUnknown"
    assert opc_server.write_calls == 1
    # no rollback of the items that were accepted
    assert opc_server.values["ns=2;s=item5"] == "value 5"


def test_empty_batch_succeeds(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        async with client.session():
            return await client.write_batch([])

    batch = asyncio.run(scenario())
    assert batch.success
    assert opc_server.write_calls == 0


def test_batch_without_session_fails(opc_server, tmp_path):
    batch = asyncio.run(_client(opc_server, tmp_path).write_batch(_items(2)))
    assert not batch.success
    assert batch.error == "not connected"


def test_write_exception_becomes_failed_result(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)
    opc_server.write_error = ConnectionResetError("socket closed")

    async def scenario():
        async with client.session():
            return await client.write_batch(_items(2)), await client.write_value("ns=2;s=x", "1")

    batch, single = asyncio.run(scenario())
    assert not batch.success
    assert "socket closed" in batch.error
    assert single is False


def test_write_and_read_single_value(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        async with client.session():
            ok = await client.write_value("ns=2;s=tag", "12.34")
            return ok, await client.read_value("ns=2;s=tag"), await client.read_value("ns=2;s=none")

    ok, value, missing = asyncio.run(scenario())
    assert ok
    assert value == "12.34"
    assert missing is None


def test_operations_when_disconnected(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        return (await client.write_value("ns=2;s=x", "1"),
                await client.read_value("ns=2;s=x"),
                await client.browse_root())

    assert asyncio.run(scenario()) == (False, None, [])


def test_session_closes_on_error(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        async with client.session() as connected:
            assert connected
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        asyncio.run(scenario())
    assert client.state is SessionState.DISCONNECTED
    assert opc_server.sessions_closed == 1


def test_browse_root(opc_server, tmp_path):
    client = _client(opc_server, tmp_path)

    async def scenario():
        async with client.session():
            return await client.browse_root()

    assert asyncio.run(scenario()) == [("Server", "Object"), ("pdf_extractor", "Object")]


def test_write_report_writes_every_mapped_item(opc_server, tmp_path, record):
    client = _client(opc_server, tmp_path)
    mapper = NodeMapper(NodeMappings())

    async def scenario():
        async with client.session():
            return await client.write_report(record, mapper)

    batch = asyncio.run(scenario())
    assert batch.success
    assert len(batch.results) == len(mapper.map_report(record))
    assert opc_server.values["ns=2;s=pdf_extractor.Data_import.sample_mass"] == "12.34"
    assert opc_server.values["ns=2;s=pdf_extractor.Data_import.Data_import"] == \
        record.cycles[0].as_array()


def test_encode_value():
    text = encode_value("12.34")
    assert text.Value.Value == "12.34"
    assert text.Value.VariantType == ua.VariantType.String

    array = encode_value([1, 2.5])
    assert array.Value.Value == [1.0, 2.5]
    assert array.Value.VariantType == ua.VariantType.Double

    assert encode_value(42).Value.Value == "42"
    assert encode_value(None).Value.Value == ""
