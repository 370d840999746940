# report_bridge/certificates.py
"""
Certificate directory bootstrap for first-time setup.

The client only ever accepts the server certificate; these folders hold the
client's own certificate/key (needed when use_security is on) and give
operators a conventional place for trusted/rejected peer certificates.
"""

import logging
from pathlib import Path
from typing import Tuple

logger = logging.getLogger(__name__)

CERT_SUBDIRS = ("Own", "TrustedPeers", "TrustedIssuers", "Rejected")
CLIENT_CERT_FILE = "client_cert.der"
CLIENT_KEY_FILE = "client_key.pem"


def ensure_certificate_dirs(base_dir: str) -> bool:
    try:
        for name in CERT_SUBDIRS:
            Path(base_dir, name).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.error("Cannot create certificate directories under %s: %s", base_dir, e)
        return False
    logger.info("Certificate directories ready under %s", Path(base_dir).resolve())
    return True


def certificate_paths(base_dir: str) -> Tuple[Path, Path]:
    own = Path(base_dir, "Own")
    return own / CLIENT_CERT_FILE, own / CLIENT_KEY_FILE


def print_certificate_info(base_dir: str) -> None:
    cert, key = certificate_paths(base_dir)
    print()
    print("=== Certificate Information ===")
    print(f"Certificate Directory: {Path(base_dir).resolve()}")
    print(f"Client certificate   : {cert}  ({'present' if cert.exists() else 'missing'})")
    print(f"Client private key   : {key}  ({'present' if key.exists() else 'missing'})")
    print()
    print("Certificate Solutions:")
    print("1. Leave opcua.use_security false unless the server requires encryption")
    print("2. With use_security, place a client certificate/key pair in the Own folder")
    print("3. Delete the certificate folder and rerun setup to reset it")
    print()
