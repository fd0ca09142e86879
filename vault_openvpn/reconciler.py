"""
Certificate lifecycle reconciliation.

Drives revocation and issuance against the CA while keeping at most one
active certificate per FQDN when auto-revoke is enabled.

Revocation is idempotent on both axes: an FQDN without an active
certificate and a serial that is already revoked are both no-ops. A serial
that does not exist is an error, since serials are exact identities
supplied by the caller.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from .helpers import normalize_serial
from .logger import get_logger
from .resolver import resolve_active_serial
from .vault import CertificateNotFound, VaultError

if TYPE_CHECKING:
    from .vault import VaultPKIClient


# Names available to configuration templates
TEMPLATE_VARIABLES = ("CertAuthority", "Certificate", "PrivateKey")


class PolicyViolationAbort(VaultError):
    """Raised when the auto-revoke step fails and issuance must not proceed."""

    def __init__(self, fqdn: str, cause: Exception):
        super().__init__(
            f"Could not revoke existing certificate for {fqdn}, "
            f"refusing to issue a new one: {cause}"
        )
        self.fqdn = fqdn


@dataclass(frozen=True)
class IssuedCertificate:
    """Certificate material produced by a successful issuance."""
    fqdn: str
    serial: str
    certificate: str
    private_key: str
    ca_certificate: str

    def template_vars(self) -> Dict[str, str]:
        """Values exposed to configuration templates."""
        values = (self.ca_certificate, self.certificate, self.private_key)
        return dict(zip(TEMPLATE_VARIABLES, values))


class LifecycleReconciler:
    """
    Orchestrates revoke-by-FQDN, revoke-by-serial and issue-with-policy.

    Every step is a single sequential call; the first failure aborts the
    remaining steps.
    """

    def __init__(self, client: "VaultPKIClient"):
        self.client = client
        self.logger = get_logger()

    def revoke_by_fqdn(self, fqdn: str) -> Optional[str]:
        """
        Revoke the active certificate of an FQDN, if there is one.

        Args:
            fqdn: Common name whose certificate should be revoked

        Returns:
            The revoked serial, or None if nothing needed revoking
        """
        serial = resolve_active_serial(self.client, fqdn)
        if serial is None:
            self.logger.info(f"No active certificate for {fqdn}, nothing to revoke")
            return None

        self.revoke_by_serial(serial)
        return serial

    def revoke_by_serial(self, serial: str) -> bool:
        """
        Revoke a certificate by serial.

        Args:
            serial: Serial number, canonical or as listed by Vault

        Returns:
            True if a revocation was written, False if already revoked

        Raises:
            CertificateNotFound: If the serial is malformed or unknown
        """
        try:
            serial = normalize_serial(serial)
        except ValueError as e:
            raise CertificateNotFound(serial) from e

        cert = self.client.read_certificate(serial)
        if cert.revoked:
            self.logger.info(f"Certificate {serial} is already revoked")
            return False

        self.client.revoke(serial)
        self.logger.event("Revoked certificate", fqdn=cert.fqdn, serial=serial)
        return True

    def issue_with_policy(
        self,
        fqdn: str,
        auto_revoke: bool,
        ttl: str,
    ) -> IssuedCertificate:
        """
        Issue a new certificate for an FQDN.

        Steps, in order: revoke the current certificate (when auto_revoke
        is set), read the CA certificate, issue. A revocation that already
        happened is not rolled back if a later step fails.

        Args:
            fqdn: Common name of the new certificate
            auto_revoke: Revoke the existing active certificate first
            ttl: Requested validity duration, e.g. "8760h0m0s"

        Returns:
            IssuedCertificate with certificate, key and CA material

        Raises:
            PolicyViolationAbort: If the auto-revoke step failed
        """
        if auto_revoke:
            try:
                self.revoke_by_fqdn(fqdn)
            except VaultError as e:
                raise PolicyViolationAbort(fqdn, e) from e

        ca_certificate = self.client.read_ca_certificate()
        issued = self.client.issue(fqdn, ttl)

        self.logger.event("Generated new certificate", fqdn=fqdn, serial=issued.serial)

        return IssuedCertificate(
            fqdn=fqdn,
            serial=issued.serial,
            certificate=issued.certificate,
            private_key=issued.private_key,
            ca_certificate=ca_certificate,
        )
