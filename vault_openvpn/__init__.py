"""
Certificate lifecycle management for OpenVPN endpoints backed by Vault PKI.

This package contains:
- vault: Vault PKI HTTP client and error types
- directory: Certificate snapshots and directory building
- resolver: FQDN to serial resolution
- reconciler: Revocation and issuance with auto-revoke policy
- render: Listing tables and configuration templates
- config_loader: Configuration loading and validation
- logger: Centralized logging setup
- helpers: Serial, duration and revocation helpers
"""

__version__ = "1.0.0"

from .logger import setup_logger, get_logger
from .config_loader import load_settings, Settings, ConfigurationError
from .directory import Certificate, build_directory
from .vault import (
    VaultPKIClient,
    IssuanceResponse,
    VaultError,
    BackendUnavailable,
    BackendProtocolError,
    CertificateNotFound,
)
from .resolver import resolve_active_serial, find_active_certificate
from .reconciler import LifecycleReconciler, IssuedCertificate, PolicyViolationAbort
from .render import (
    render_certificate_table,
    certificates_to_json,
    load_template,
    render_template,
    validate_template,
    sort_certificates,
    TemplateError,
)
from .helpers import format_serial, normalize_serial, parse_duration, format_duration

__all__ = [
    "__version__",
    # Logger
    "setup_logger",
    "get_logger",
    # Config
    "load_settings",
    "Settings",
    "ConfigurationError",
    # Vault
    "VaultPKIClient",
    "IssuanceResponse",
    "VaultError",
    "BackendUnavailable",
    "BackendProtocolError",
    "CertificateNotFound",
    # Directory / resolution
    "Certificate",
    "build_directory",
    "resolve_active_serial",
    "find_active_certificate",
    # Reconciler
    "LifecycleReconciler",
    "IssuedCertificate",
    "PolicyViolationAbort",
    # Rendering
    "render_certificate_table",
    "certificates_to_json",
    "load_template",
    "render_template",
    "validate_template",
    "sort_certificates",
    "TemplateError",
    # Helpers
    "format_serial",
    "normalize_serial",
    "parse_duration",
    "format_duration",
]
