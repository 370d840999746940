# report_bridge/opcua_client.py
"""
OPC UA session client (asyncua) — one session per export.

Disconnected → Connecting → Connected → Disconnected. There is no reconnect
logic: a failed connect goes straight back to Disconnected and the caller may
simply call connect() again.

Every public operation converts protocol/network failures into a False / None
/ failed-result value plus a log line. An OPC UA problem must never take the
whole run down; the orchestrator decides what a failed channel means.
"""

import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Callable, List, Optional, Sequence, Tuple

from asyncua import Client, ua

from report_bridge.certificates import certificate_paths
from report_bridge.config import OpcUaSettings
from report_bridge.models import BatchWriteResult, ReportRecord, WriteItem, WriteResult
from report_bridge.node_mapper import NodeMapper

logger = logging.getLogger(__name__)

SECURITY_POLICY = "Basic256Sha256"
SECURITY_MODE = "SignAndEncrypt"


class SessionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


def encode_value(value: Any) -> ua.DataValue:
    """str → String; sequence of numbers → Double[]; anything else → its str()."""
    if isinstance(value, (list, tuple)) and all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
    ):
        return ua.DataValue(ua.Variant([float(v) for v in value], ua.VariantType.Double))
    if not isinstance(value, str):
        value = "" if value is None else str(value)
    return ua.DataValue(ua.Variant(value, ua.VariantType.String))


def _is_good(status: Any) -> bool:
    try:
        return bool(status.is_good())
    except AttributeError:
        return False


def _status_text(status: Any) -> str:
    return getattr(status, "name", None) or str(status)


class OpcSessionClient:
    def __init__(
        self,
        settings: OpcUaSettings,
        certificate_dir: str = "Certificates",
        client_factory: Callable[..., Any] = Client,
    ):
        self.settings = settings
        self.certificate_dir = certificate_dir
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self.state = SessionState.DISCONNECTED

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED and self._client is not None

    # ─────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────

    def _build_client(self) -> Any:
        s = self.settings
        client = self._client_factory(url=s.endpoint_url, timeout=s.operation_timeout_ms / 1000)
        client.name = s.application_name
        client.description = s.application_name
        client.session_timeout = s.session_timeout_ms
        if s.username:
            client.set_user(s.username)
            client.set_password(s.password)
        return client

    async def _apply_security(self, client: Any) -> None:
        cert, key = certificate_paths(self.certificate_dir)
        if not cert.exists() or not key.exists():
            raise FileNotFoundError(
                f"use_security is on but no client certificate/key in {cert.parent} "
                f"(expected {cert.name} and {key.name}; run setup)"
            )
        await client.set_security_string(f"{SECURITY_POLICY},{SECURITY_MODE},{cert},{key}")

    async def connect(self) -> bool:
        """Open the session. Returns False (and logs why) instead of raising."""
        if self.is_connected:
            return True

        s = self.settings
        self.state = SessionState.CONNECTING
        logger.info("Connecting to %s (%s, %s)", s.endpoint_url,
                    "anonymous" if s.anonymous else f"user {s.username}",
                    "secure" if s.use_security else "no security")
        try:
            client = self._build_client()
            if s.use_security:
                await self._apply_security(client)
            await client.connect()
        except Exception as e:
            logger.error("Connection to %s failed: %s", s.endpoint_url, e)
            self._client = None
            self.state = SessionState.DISCONNECTED
            return False

        self._client = client
        self.state = SessionState.CONNECTED
        logger.info("Connected to OPC UA server %s", s.endpoint_url)
        return True

    async def disconnect(self) -> None:
        """Close the session if there is one. Safe to call any number of times."""
        client, self._client = self._client, None
        self.state = SessionState.DISCONNECTED
        if client is None:
            return
        try:
            await client.disconnect()
            logger.info("Disconnected from OPC UA server")
        except Exception as e:
            logger.warning("Disconnect error: %s", e)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[bool]:
        """
        async with client.session() as connected:
            ...
        The session is closed on every exit path.
        """
        connected = await self.connect()
        try:
            yield connected
        finally:
            await self.disconnect()

    # ─────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────

    async def write_value(self, node_id: str, value: Any) -> bool:
        if not self.is_connected:
            logger.warning("Write called but not connected - NodeId: %s", node_id)
            return False
        if not node_id:
            logger.warning("Cannot write value - node id is empty")
            return False

        try:
            node = self._client.get_node(node_id)
            results = await self._client.write_values([node], [encode_value(value)],
                                                      raise_on_partial_error=False)
        except Exception as e:
            logger.error("Write exception for %s: %s", node_id, e)
            return False

        status = results[0] if results else None
        if _is_good(status):
            logger.info("Write successful - NodeId: %s", node_id)
            return True
        logger.error("Write failed - NodeId: %s, Status: %s", node_id, _status_text(status))
        return False

    async def write_batch(self, items: Sequence[WriteItem]) -> BatchWriteResult:
        """
        One batched write call. Overall success only if every item is good;
        items that were written stay written when others fail.
        """
        if not self.is_connected:
            logger.warning("Cannot write batch - not connected to OPC UA server")
            return BatchWriteResult(error="not connected")

        items = list(items or [])
        if not items:
            logger.info("No items to write")
            return BatchWriteResult()

        logger.info("Writing batch of %d items to OPC UA...", len(items))
        try:
            nodes = [self._client.get_node(item.node_id) for item in items]
            values = [encode_value(item.value) for item in items]
            statuses = await self._client.write_values(nodes, values, raise_on_partial_error=False)
        except Exception as e:
            logger.error("Batch write failed: %s", e)
            return BatchWriteResult(error=str(e))

        statuses = list(statuses or [])
        results: List[WriteResult] = []
        for i, item in enumerate(items):
            status = statuses[i] if i < len(statuses) else None
            good = _is_good(status)
            text = _status_text(status) if status is not None else "no status returned"
            results.append(WriteResult(item=item, good=good, status=text))
            if good:
                logger.info("  %s: Success", item.description or item.node_id)
            else:
                logger.error("  %s: Failed - %s", item.description or item.node_id, text)

        batch = BatchWriteResult(results=results)
        logger.info("Batch write completed: %d/%d successful", len(batch.succeeded), len(items))
        return batch

    async def write_report(self, record: ReportRecord, mapper: NodeMapper) -> BatchWriteResult:
        if record is None:
            logger.warning("Cannot write data - report record is missing")
            return BatchWriteResult(error="no record")
        if not mapper.validate_mappings():
            logger.warning("Node mappings incomplete: %s", ", ".join(mapper.missing_required()))
        return await self.write_batch(mapper.map_report(record))

    # ─────────────────────────────────────────────────────────
    # Reads / browse
    # ─────────────────────────────────────────────────────────

    async def read_value(self, node_id: str) -> Optional[Any]:
        if not self.is_connected:
            logger.warning("Cannot read value - not connected. NodeId: %s", node_id)
            return None
        if not node_id:
            logger.warning("Cannot read value - node id is empty")
            return None

        try:
            data_value = await self._client.get_node(node_id).read_data_value()
        except Exception as e:
            logger.error("Read failed for %s: %s", node_id, e)
            return None

        if data_value.StatusCode is not None and not _is_good(data_value.StatusCode):
            logger.error("Read failed - NodeId: %s, Status: %s", node_id,
                         _status_text(data_value.StatusCode))
            return None
        value = data_value.Value.Value if data_value.Value is not None else None
        logger.info("Read successful - NodeId: %s, Value: %r", node_id, value)
        return value

    async def browse_root(self) -> List[Tuple[str, str]]:
        """(display name, node class) of each child of the Objects folder. Diagnostics only."""
        if not self.is_connected:
            logger.warning("Cannot browse - not connected to OPC UA server")
            return []

        entries: List[Tuple[str, str]] = []
        try:
            for child in await self._client.nodes.objects.get_children():
                name = await child.read_display_name()
                node_class = await child.read_node_class()
                entries.append((getattr(name, "Text", str(name)),
                                getattr(node_class, "name", str(node_class))))
        except Exception as e:
            logger.error("Browse failed: %s", e)
            return entries

        logger.info("Available OPC UA nodes:")
        for name, node_class in entries:
            logger.info("   - %s (%s)", name, node_class)
        return entries
