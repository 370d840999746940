# report_bridge/diagnostics.py
"""
Step-by-step OPC UA connection check for `python main.py diagnose`.

Network → endpoint discovery → session → browse. Stops at the first failing
step and prints what to look at. Output goes to stdout; this is an operator
tool, not part of an export run.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Callable, Optional, Tuple
from urllib.parse import urlparse

from asyncua import Client

from report_bridge.config import AppSettings
from report_bridge.opcua_client import OpcSessionClient

logger = logging.getLogger(__name__)

TCP_TIMEOUT_S = 5.0
DEFAULT_OPCUA_PORT = 4840


def split_endpoint(endpoint_url: str) -> Tuple[str, int]:
    parsed = urlparse(endpoint_url)
    return parsed.hostname or "localhost", parsed.port or DEFAULT_OPCUA_PORT


async def check_tcp(endpoint_url: str, timeout: float = TCP_TIMEOUT_S) -> bool:
    host, port = split_endpoint(endpoint_url)
    print(f"   Testing TCP connection to {host}:{port}...")
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError:
        print(f"   ❌ TCP connection timed out after {timeout:.0f}s")
        return False
    except OSError as e:
        print(f"   ❌ TCP connection failed: {e}")
        return False
    writer.close()
    await writer.wait_closed()
    print("   ✅ TCP connection successful")
    return True


async def check_endpoints(endpoint_url: str, timeout_s: float,
                          client_factory: Callable[..., Any] = Client) -> bool:
    print("   Discovering endpoints...")
    try:
        client = client_factory(url=endpoint_url, timeout=timeout_s)
        endpoints = await client.connect_and_get_server_endpoints()
    except Exception as e:
        print(f"   ❌ Endpoint discovery exception: {e}")
        return False

    if not endpoints:
        print("   ❌ No endpoints found")
        return False
    print(f"   ✅ Found {len(endpoints)} endpoint(s):")
    for ep in endpoints:
        print(f"      - {ep.EndpointUrl} ({ep.SecurityPolicyUri})")
    return True


async def check_session(settings: AppSettings,
                        client_factory: Callable[..., Any] = Client) -> bool:
    opc = settings.opcua
    print("   Creating OPC UA session...")
    print(f"   Using {'anonymous authentication' if opc.anonymous else 'username authentication: ' + opc.username}")
    client = OpcSessionClient(opc, certificate_dir=settings.application.certificate_dir,
                              client_factory=client_factory)
    async with client.session() as connected:
        if not connected:
            print("   ❌ Session creation failed (see log for the server's reason)")
            return False
        print("   ✅ Session created successfully")
        nodes = await client.browse_root()
        print(f"   Objects folder: {len(nodes)} child node(s)")
        for name, node_class in nodes:
            print(f"      - {name} ({node_class})")
    return True


async def diagnose_connection(settings: AppSettings, endpoint_url: Optional[str] = None,
                              client_factory: Callable[..., Any] = Client) -> bool:
    """Run every step against `endpoint_url` (or the configured endpoint). True if all pass."""
    if endpoint_url:
        settings = dataclasses.replace(
            settings, opcua=dataclasses.replace(settings.opcua, endpoint_url=endpoint_url))
    opc = settings.opcua

    print("=== OPC UA Connection Diagnostic ===")
    print()
    print(f"Testing connection to: {opc.endpoint_url}")
    print(f"Application Name: {opc.application_name}")
    print(f"Session Timeout: {opc.session_timeout_ms}ms")
    print(f"Operation Timeout: {opc.operation_timeout_ms}ms")
    print(f"Use Security: {opc.use_security}")
    print(f"Auto Accept Certificates: {opc.auto_accept_untrusted_certificates}")
    print()

    steps = (
        ("network connectivity", "Network Test",
         lambda: check_tcp(opc.endpoint_url),
         ["Server is running", "Correct IP address/hostname",
          "Firewall allows connection", "Port is not blocked"]),
        ("endpoint discovery", "Endpoint Discovery",
         lambda: check_endpoints(opc.endpoint_url, opc.operation_timeout_ms / 1000, client_factory),
         ["OPC UA server is running", "Endpoint URL is correct",
          "Server allows anonymous discovery"]),
        ("session creation", "Session Creation",
         lambda: check_session(settings, client_factory),
         ["Authentication credentials", "Security policy compatibility", "Certificate issues"]),
    )

    for n, (title, label, run, hints) in enumerate(steps, 1):
        print(f"Step {n}: Testing {title}...")
        ok = await run()
        print(f"{label}: {'✅ PASS' if ok else '❌ FAIL'}")
        print()
        if not ok:
            print(f"❌ {title.capitalize()} failed. Check:")
            for hint in hints:
                print(f"   - {hint}")
            logger.info("Diagnostic stopped at step %d (%s)", n, title)
            return False

    print("✅ All tests passed! Connection should work.")
    return True


def print_common_solutions() -> None:
    print()
    print("=== Common Solutions ===")
    print()
    print("1. Server not running")
    print("   - Start the OPC UA server (e.g. KEPServerEX service)")
    print()
    print("2. Wrong endpoint URL")
    print("   - Default Kepware endpoint: opc.tcp://localhost:49320")
    print("   - Verify opcua.endpoint_url in appsettings.json or OPCUA_ENDPOINT_URL")
    print()
    print("3. Firewall issues")
    print("   - Allow the endpoint port (49320 for Kepware) through the firewall")
    print()
    print("4. Certificate issues")
    print("   - Keep opcua.auto_accept_untrusted_certificates: true")
    print("   - Run `python main.py setup` to create the certificate folders")
    print()
    print("5. Security policy mismatch")
    print("   - Set opcua.use_security: false for testing")
    print()
    print("6. Authentication problems")
    print("   - Use anonymous authentication (empty username/password)")
    print("   - Check the server's user management settings")
