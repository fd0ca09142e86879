"""
FQDN to serial resolution.
"""

from typing import TYPE_CHECKING, Iterable, Optional

from .directory import Certificate, build_directory
from .logger import get_logger

if TYPE_CHECKING:
    from .vault import VaultPKIClient


def find_active_certificate(
    certificates: Iterable[Certificate],
    fqdn: str,
) -> Optional[Certificate]:
    """
    Return the first non-revoked certificate whose FQDN matches exactly.

    Matching is case-sensitive with no wildcard or suffix handling.
    """
    for cert in certificates:
        if cert.fqdn == fqdn and not cert.revoked:
            return cert
    return None


def resolve_active_serial(client: "VaultPKIClient", fqdn: str) -> Optional[str]:
    """
    Resolve an FQDN to the serial of its active certificate.

    Args:
        client: CA client used to build the directory
        fqdn: Common name to look up

    Returns:
        Canonical serial, or None if the FQDN has no active certificate
    """
    cert = find_active_certificate(build_directory(client), fqdn)
    if cert is None:
        get_logger().debug(f"No active certificate for {fqdn}")
        return None
    return cert.serial
