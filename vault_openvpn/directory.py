"""
Certificate directory.

Builds a request-scoped snapshot of every certificate known to the CA and
classifies each one as active or revoked.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from . import helpers
from .logger import get_logger

if TYPE_CHECKING:
    from .vault import VaultPKIClient


@dataclass(frozen=True)
class Certificate:
    """
    Read-only snapshot of a certificate record held by the CA.

    The serial is the only stable identity; several certificates may share
    an FQDN. Revocation status is computed on access, never stored.
    """
    fqdn: str
    serial: str
    not_before: datetime
    not_after: datetime
    revocation_time: Optional[int] = None

    @classmethod
    def from_pem(cls, pem: str, revocation_time: Any = None) -> "Certificate":
        """
        Build a snapshot from PEM text and the record's revocation time.

        Args:
            pem: Certificate in PEM encoding
            revocation_time: Raw revocation_time value from the CA record

        Returns:
            Certificate snapshot

        Raises:
            ValueError: If the PEM or the revocation time cannot be parsed
        """
        cert = x509.load_pem_x509_certificate(pem.encode())

        common_names = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        fqdn = str(common_names[0].value) if common_names else ""

        return cls(
            fqdn=fqdn,
            serial=helpers.format_serial(cert.serial_number),
            not_before=cert.not_valid_before_utc,
            not_after=cert.not_valid_after_utc,
            revocation_time=helpers.parse_revocation_time(revocation_time),
        )

    def is_revoked(self, now: Optional[float] = None) -> bool:
        """Check revocation against an explicit clock (epoch seconds)."""
        return helpers.is_revoked(self.revocation_time, now)

    @property
    def revoked(self) -> bool:
        """True if the CA recorded a revocation that has taken effect."""
        return self.is_revoked()


def build_directory(
    client: "VaultPKIClient",
    include_revoked: bool = False,
) -> List[Certificate]:
    """
    Build the list of certificates known to the CA.

    Every listed serial is read individually. A failure on any serial fails
    the whole build, so callers never act on a partial view.

    Args:
        client: CA client used for listing and reading
        include_revoked: Keep revoked certificates in the result

    Returns:
        Certificates in the order the CA lists them
    """
    logger = get_logger()
    certificates: List[Certificate] = []
    skipped = 0

    for serial in client.list_serials():
        cert = client.read_certificate(serial)

        if cert.revoked and not include_revoked:
            skipped += 1
            continue

        certificates.append(cert)

    logger.debug(
        f"Directory built: {len(certificates)} certificate(s), "
        f"{skipped} revoked skipped"
    )
    return certificates
