"""
HashiCorp Vault PKI operations.

Thin client for the PKI secrets engine HTTP API: listing, reading,
revoking and issuing certificates. Each call is made exactly once; any
failure surfaces immediately to the caller.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote

import requests

from .directory import Certificate
from .helpers import normalize_serial
from .logger import get_logger


class VaultError(Exception):
    """Base class for errors raised while talking to the CA service."""
    pass


class BackendUnavailable(VaultError):
    """Raised when Vault cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class BackendProtocolError(VaultError):
    """Raised when a Vault response is malformed or lacks required fields."""
    pass


class CertificateNotFound(VaultError):
    """Raised when a requested serial number does not exist in the CA."""

    def __init__(self, serial: str):
        super().__init__(f"Certificate with serial {serial} not found")
        self.serial = serial


@dataclass(frozen=True)
class IssuanceResponse:
    """Material returned by the issue endpoint."""
    certificate: str
    private_key: str
    serial: str


class VaultPKIClient:
    """
    Client for a Vault PKI secrets engine mount.

    All paths are relative to the mount, e.g. ``<mount>/cert/<serial>``.
    """

    def __init__(
        self,
        address: str,
        token: str,
        mount: str = "pki",
        role: str = "openvpn",
        namespace: Optional[str] = None,
        verify: Union[bool, str] = True,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the Vault client.

        Args:
            address: Vault API address, e.g. https://127.0.0.1:8200
            token: Vault token used for every request
            mount: Mount point of the PKI secrets engine
            role: PKI role used for issuing certificates
            namespace: Optional Vault Enterprise namespace
            verify: TLS verification flag or CA bundle path
            timeout: Per-request timeout in seconds
            session: Optional pre-built requests session
        """
        self.address = address.rstrip("/")
        self.mount = mount.strip("/")
        self.role = role
        self.timeout = timeout
        self.logger = get_logger()

        self.session = session or requests.Session()
        self.session.headers["X-Vault-Token"] = token
        if namespace:
            self.session.headers["X-Vault-Namespace"] = namespace
        self.session.verify = verify

    @classmethod
    def from_settings(cls, settings) -> "VaultPKIClient":
        """Build a client from resolved Settings."""
        if settings.skip_verify:
            verify: Union[bool, str] = False
        else:
            verify = settings.ca_cert or True

        return cls(
            address=settings.vault_addr,
            token=settings.vault_token,
            mount=settings.mount,
            role=settings.pki_role,
            namespace=settings.vault_namespace,
            verify=verify,
            timeout=settings.timeout,
        )

    def _url(self, *parts: str) -> str:
        path = "/".join([self.mount] + [quote(p, safe=":") for p in parts])
        return f"{self.address}/v1/{path}"

    def _request(
        self,
        method: str,
        *parts: str,
        payload: Optional[Dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Perform a single request against the mount.

        Args:
            method: HTTP method (GET, POST, LIST)
            *parts: Path components below the mount
            payload: JSON body for write requests
            allow_missing: Return None instead of raising on HTTP 404

        Returns:
            Decoded JSON body, an empty dict for bodiless responses, or None
            for a tolerated 404

        Raises:
            BackendUnavailable: On transport failure or an error status
            BackendProtocolError: If the body is not a JSON object
        """
        url = self._url(*parts)
        self.logger.debug(f"{method} {url}")

        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise BackendUnavailable(f"Unable to reach Vault at {self.address}: {e}") from e

        if response.status_code == 404 and allow_missing:
            return None

        if not 200 <= response.status_code < 300:
            raise BackendUnavailable(
                f"Vault returned {response.status_code} for {method} "
                f"{'/'.join((self.mount,) + parts)}: {self._errors(response)}",
                status_code=response.status_code,
            )

        if response.status_code == 204 or not response.content:
            return {}

        try:
            body = response.json()
        except ValueError as e:
            raise BackendProtocolError(f"Vault returned a non-JSON response: {e}") from e

        if not isinstance(body, dict):
            raise BackendProtocolError("Vault returned an unexpected response body")

        return body

    @staticmethod
    def _errors(response: requests.Response) -> str:
        """Extract Vault's error list from a failed response."""
        try:
            errors = response.json().get("errors")
        except (ValueError, AttributeError):
            errors = None

        if errors:
            return "; ".join(str(e) for e in errors)
        return response.reason or "unknown error"

    @staticmethod
    def _require_data(body: Optional[Dict[str, Any]], what: str) -> Dict[str, Any]:
        data = (body or {}).get("data")
        if not isinstance(data, dict):
            raise BackendProtocolError(f"Got no data from backend ({what})")
        return data

    @staticmethod
    def _require_string(data: Dict[str, Any], key: str, what: str) -> str:
        value = data.get(key)
        if not isinstance(value, str) or not value:
            raise BackendProtocolError(f"Response for {what} is missing '{key}'")
        return value

    def list_serials(self) -> List[str]:
        """
        List the serial numbers of all certificates known to the mount.

        Returns:
            Serial strings in the order Vault lists them
        """
        body = self._request("LIST", "certs", allow_missing=True)

        # Vault answers 404 on LIST when there are no entries
        if body is None:
            return []

        data = self._require_data(body, "certificate listing")
        keys = data.get("keys")
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            raise BackendProtocolError("Certificate listing is missing 'keys'")

        self.logger.debug(f"Vault listed {len(keys)} certificate(s)")
        return keys

    def read_certificate(self, serial: str) -> Certificate:
        """
        Read a single certificate by serial.

        Args:
            serial: Serial number in any form Vault accepts

        Returns:
            Certificate snapshot including its revocation time

        Raises:
            CertificateNotFound: If the serial does not exist
        """
        body = self._request("GET", "cert", serial, allow_missing=True)
        if body is None or body.get("data") is None:
            raise CertificateNotFound(serial)

        data = self._require_data(body, f"certificate {serial}")
        if not data.get("certificate"):
            raise CertificateNotFound(serial)

        pem = self._require_string(data, "certificate", f"certificate {serial}")

        try:
            return Certificate.from_pem(pem, data.get("revocation_time"))
        except ValueError as e:
            raise BackendProtocolError(
                f"Unable to parse certificate {serial}: {e}"
            ) from e

    def revoke(self, serial: str) -> None:
        """
        Revoke a certificate.

        Args:
            serial: Canonical serial number
        """
        self._request("POST", "revoke", payload={"serial_number": serial})

    def issue(self, fqdn: str, ttl: str) -> IssuanceResponse:
        """
        Issue a new certificate for an FQDN using the configured role.

        Args:
            fqdn: Common name of the new certificate
            ttl: Requested validity, e.g. "8760h0m0s"

        Returns:
            IssuanceResponse with PEM material and canonical serial
        """
        body = self._request(
            "POST",
            "issue",
            self.role,
            payload={"common_name": fqdn, "ttl": ttl},
        )
        what = f"issuance of {fqdn}"
        data = self._require_data(body, what)

        serial = self._require_string(data, "serial_number", what)
        try:
            serial = normalize_serial(serial)
        except ValueError as e:
            raise BackendProtocolError(f"Invalid serial in {what}: {e}") from e

        return IssuanceResponse(
            certificate=self._require_string(data, "certificate", what),
            private_key=self._require_string(data, "private_key", what),
            serial=serial,
        )

    def read_ca_certificate(self) -> str:
        """
        Read the CA certificate of the mount.

        Returns:
            CA certificate as PEM text
        """
        body = self._request("GET", "cert", "ca")
        data = self._require_data(body, "CA certificate")
        return self._require_string(data, "certificate", "CA certificate")
