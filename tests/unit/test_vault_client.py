"""Unit tests for the Vault PKI HTTP client."""

import json
from types import SimpleNamespace
from unittest.mock import Mock

import pytest
import requests

from vault_openvpn.vault import (
    BackendProtocolError,
    BackendUnavailable,
    CertificateNotFound,
    VaultPKIClient,
)

from ..utils.factories import CertificateFactory, to_pem

ADDRESS = "https://vault.example.com:8200"


def make_response(status_code: int, body=None, raw: bytes = None, reason: str = "") -> requests.Response:
    """Build a real requests.Response with the given payload."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    if raw is not None:
        response._content = raw
    elif body is not None:
        response._content = json.dumps(body).encode()
    else:
        response._content = b""
    return response


@pytest.fixture
def session():
    session = requests.Session()
    session.request = Mock()
    return session


@pytest.fixture
def client(session) -> VaultPKIClient:
    return VaultPKIClient(ADDRESS, "s.token", mount="/pki/", role="openvpn", session=session)


@pytest.fixture
def leaf_pem() -> str:
    ca_cert, ca_key = CertificateFactory.create_ca_certificate()
    leaf, _ = CertificateFactory.create_leaf_certificate(
        "vpn.example.com", ca_cert, ca_key, serial_number=0x0102FF
    )
    return to_pem(leaf)


def _call(session, index=-1):
    args, kwargs = session.request.call_args_list[index]
    return args[0], args[1], kwargs


class TestSession:
    """Session setup."""

    def test_token_header(self, client, session):
        assert session.headers["X-Vault-Token"] == "s.token"
        assert "X-Vault-Namespace" not in session.headers

    def test_namespace_header(self, session):
        VaultPKIClient(ADDRESS, "t", namespace="team-a", session=session)
        assert session.headers["X-Vault-Namespace"] == "team-a"

    @pytest.mark.parametrize("skip_verify,ca_cert,expected", [
        (False, None, True),
        (False, "/etc/ssl/vault-ca.pem", "/etc/ssl/vault-ca.pem"),
        (True, "/etc/ssl/vault-ca.pem", False),
    ])
    def test_from_settings_tls_verification(self, skip_verify, ca_cert, expected):
        settings = SimpleNamespace(
            vault_addr=ADDRESS,
            vault_token="t",
            mount="pki",
            pki_role="openvpn",
            vault_namespace=None,
            skip_verify=skip_verify,
            ca_cert=ca_cert,
            timeout=5.0,
        )
        client = VaultPKIClient.from_settings(settings)
        assert client.session.verify == expected
        assert client.timeout == 5.0


class TestListSerials:
    """LIST <mount>/certs"""

    def test_returns_keys(self, client, session):
        session.request.return_value = make_response(200, {"data": {"keys": ["01:02", "0a:0b"]}})

        assert client.list_serials() == ["01:02", "0a:0b"]
        method, url, kwargs = _call(session)
        assert method == "LIST"
        assert url == f"{ADDRESS}/v1/pki/certs"
        assert kwargs["timeout"] == 60.0

    def test_404_means_no_certificates(self, client, session):
        session.request.return_value = make_response(404, {"errors": []})
        assert client.list_serials() == []

    def test_missing_data_is_protocol_error(self, client, session):
        session.request.return_value = make_response(200, {"data": None})
        with pytest.raises(BackendProtocolError):
            client.list_serials()

    def test_missing_keys_is_protocol_error(self, client, session):
        session.request.return_value = make_response(200, {"data": {}})
        with pytest.raises(BackendProtocolError):
            client.list_serials()

    def test_connection_failure_is_unavailable(self, client, session):
        session.request.side_effect = requests.ConnectionError("connection refused")
        with pytest.raises(BackendUnavailable) as excinfo:
            client.list_serials()
        assert isinstance(excinfo.value.__cause__, requests.ConnectionError)

    def test_error_status_is_unavailable(self, client, session):
        session.request.return_value = make_response(
            403, {"errors": ["permission denied"]}, reason="Forbidden"
        )
        with pytest.raises(BackendUnavailable) as excinfo:
            client.list_serials()
        assert excinfo.value.status_code == 403
        assert "permission denied" in str(excinfo.value)

    def test_non_json_body_is_protocol_error(self, client, session):
        session.request.return_value = make_response(200, raw=b"<html>proxy</html>")
        with pytest.raises(BackendProtocolError):
            client.list_serials()


class TestReadCertificate:
    """GET <mount>/cert/<serial>"""

    def test_parses_certificate(self, client, session, leaf_pem):
        session.request.return_value = make_response(
            200, {"data": {"certificate": leaf_pem, "revocation_time": 0}}
        )

        cert = client.read_certificate("01:02:ff")

        _, url, _ = _call(session)
        assert url == f"{ADDRESS}/v1/pki/cert/01:02:ff"
        assert cert.fqdn == "vpn.example.com"
        assert cert.serial == "01:02:FF"
        assert cert.revoked is False

    def test_revocation_time_is_read(self, client, session, leaf_pem, past_timestamp):
        session.request.return_value = make_response(
            200, {"data": {"certificate": leaf_pem, "revocation_time": past_timestamp}}
        )
        assert client.read_certificate("01:02:ff").revoked is True

    def test_404_is_not_found(self, client, session):
        session.request.return_value = make_response(404, {"errors": []})
        with pytest.raises(CertificateNotFound) as excinfo:
            client.read_certificate("de:ad")
        assert excinfo.value.serial == "de:ad"

    def test_null_data_is_not_found(self, client, session):
        session.request.return_value = make_response(200, {"data": None})
        with pytest.raises(CertificateNotFound):
            client.read_certificate("de:ad")

    def test_empty_certificate_is_not_found(self, client, session):
        session.request.return_value = make_response(200, {"data": {"certificate": ""}})
        with pytest.raises(CertificateNotFound):
            client.read_certificate("de:ad")

    def test_unparsable_pem_is_protocol_error(self, client, session):
        session.request.return_value = make_response(
            200, {"data": {"certificate": "not a certificate"}}
        )
        with pytest.raises(BackendProtocolError):
            client.read_certificate("de:ad")

    def test_malformed_revocation_time_is_protocol_error(self, client, session, leaf_pem):
        session.request.return_value = make_response(
            200, {"data": {"certificate": leaf_pem, "revocation_time": "soon"}}
        )
        with pytest.raises(BackendProtocolError):
            client.read_certificate("01:02:ff")

    def test_out_of_range_revocation_time_is_protocol_error(self, client, session, leaf_pem):
        session.request.return_value = make_response(
            200, {"data": {"certificate": leaf_pem, "revocation_time": "1e999"}}
        )
        with pytest.raises(BackendProtocolError):
            client.read_certificate("01:02:ff")

    def test_server_error_is_unavailable(self, client, session):
        session.request.return_value = make_response(503, {"errors": ["Vault is sealed"]})
        with pytest.raises(BackendUnavailable):
            client.read_certificate("de:ad")


class TestWrites:
    """POST <mount>/revoke and <mount>/issue/<role>"""

    def test_revoke_sends_serial(self, client, session):
        session.request.return_value = make_response(
            200, {"data": {"revocation_time": 1700000000}}
        )

        client.revoke("01:02:FF")

        method, url, kwargs = _call(session)
        assert method == "POST"
        assert url == f"{ADDRESS}/v1/pki/revoke"
        assert kwargs["json"] == {"serial_number": "01:02:FF"}

    def test_revoke_accepts_empty_response(self, client, session):
        session.request.return_value = make_response(204)
        client.revoke("01:02:FF")

    def test_revoke_failure_is_unavailable(self, client, session):
        session.request.return_value = make_response(400, {"errors": ["invalid serial"]})
        with pytest.raises(BackendUnavailable):
            client.revoke("01:02:FF")

    def test_issue(self, client, session):
        session.request.return_value = make_response(200, {"data": {
            "certificate": "CERT",
            "private_key": "KEY",
            "serial_number": "3a:0b:ff",
        }})

        issued = client.issue("vpn.example.com", "8760h0m0s")

        method, url, kwargs = _call(session)
        assert method == "POST"
        assert url == f"{ADDRESS}/v1/pki/issue/openvpn"
        assert kwargs["json"] == {"common_name": "vpn.example.com", "ttl": "8760h0m0s"}
        assert issued.certificate == "CERT"
        assert issued.private_key == "KEY"
        assert issued.serial == "3A:0B:FF"

    @pytest.mark.parametrize("missing", ["certificate", "private_key", "serial_number"])
    def test_issue_missing_field_is_protocol_error(self, client, session, missing):
        data = {"certificate": "CERT", "private_key": "KEY", "serial_number": "3a:0b"}
        del data[missing]
        session.request.return_value = make_response(200, {"data": data})

        with pytest.raises(BackendProtocolError):
            client.issue("vpn.example.com", "1h0m0s")

    def test_issue_invalid_serial_is_protocol_error(self, client, session):
        session.request.return_value = make_response(200, {"data": {
            "certificate": "CERT", "private_key": "KEY", "serial_number": "xyz",
        }})
        with pytest.raises(BackendProtocolError):
            client.issue("vpn.example.com", "1h0m0s")

    def test_read_ca_certificate(self, client, session):
        session.request.return_value = make_response(200, {"data": {"certificate": "CA PEM"}})

        assert client.read_ca_certificate() == "CA PEM"
        method, url, _ = _call(session)
        assert (method, url) == ("GET", f"{ADDRESS}/v1/pki/cert/ca")

    def test_read_ca_certificate_without_data(self, client, session):
        session.request.return_value = make_response(200, {"warnings": ["nothing here"]})
        with pytest.raises(BackendProtocolError):
            client.read_ca_certificate()
