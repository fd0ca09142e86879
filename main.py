#!/usr/bin/env python3
"""
Vault PKI certificate management for OpenVPN - Main Entry Point.

Lists, issues and revokes certificates held by a HashiCorp Vault PKI
mount. Issued certificates are rendered through a configuration template
(client.conf / server.conf) to stdout or a file.

Usage:
    # List currently valid certificates
    python main.py list

    # Issue a client certificate, revoking the previous one first
    python main.py client vpn-client01.example.com > client01.ovpn

    # Issue a server certificate without auto-revoke
    python main.py --no-auto-revoke server vpn.example.com

    # Revoke by FQDN or by serial
    python main.py revoke vpn-client01.example.com
    python main.py revoke-serial 1A:2B:3C
"""

import argparse
import logging
import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional, TextIO

from vault_openvpn import __version__
from vault_openvpn.config_loader import ConfigurationError, Settings, load_settings
from vault_openvpn.directory import build_directory
from vault_openvpn.helpers import format_duration
from vault_openvpn.logger import parse_log_level, setup_logger, get_logger
from vault_openvpn.reconciler import LifecycleReconciler, TEMPLATE_VARIABLES
from vault_openvpn.render import (
    TemplateError,
    certificates_to_json,
    load_template,
    render_certificate_table,
    render_template,
    validate_template,
)
from vault_openvpn.vault import VaultError, VaultPKIClient


ACTION_LIST = "list"
ACTION_CLIENT = "client"
ACTION_SERVER = "server"
ACTION_REVOKE = "revoke"
ACTION_REVOKE_SERIAL = "revoke-serial"

ACTIONS = [ACTION_CLIENT, ACTION_SERVER, ACTION_LIST, ACTION_REVOKE, ACTION_REVOKE_SERIAL]

# Template file rendered for each issuing action
TEMPLATES = {
    ACTION_CLIENT: "client.conf",
    ACTION_SERVER: "server.conf",
}

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="vault-openvpn",
        description="Manage OpenVPN certificates issued by a Vault PKI mount",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s list                          # Show valid certificates
  %(prog)s list --all                    # Include revoked certificates
  %(prog)s client user1.example.com      # New client config on stdout
  %(prog)s server vpn.example.com -o server.ovpn
  %(prog)s revoke user1.example.com
  %(prog)s revoke-serial 1A:2B:3C
        """,
    )

    parser.add_argument("action", choices=ACTIONS, help="Action to perform")
    parser.add_argument(
        "target",
        nargs="?",
        help="FQDN for client/server/revoke, serial for revoke-serial",
    )

    # Vault connection
    parser.add_argument("--config", type=str, help="Optional YAML configuration file")
    parser.add_argument("--vault-addr", type=str, help="Vault API address (env: VAULT_ADDR)")
    parser.add_argument(
        "--vault-token",
        type=str,
        help="Vault token (env: VAULT_TOKEN, default: ~/.vault-token)",
    )
    parser.add_argument(
        "--vault-namespace",
        type=str,
        help="Vault namespace (env: VAULT_NAMESPACE)",
    )
    parser.add_argument(
        "--ca-cert",
        type=str,
        help="CA bundle used to verify Vault's TLS certificate (env: VAULT_CACERT)",
    )
    parser.add_argument(
        "--skip-verify",
        action="store_const",
        const=True,
        default=None,
        help="Do not verify Vault's TLS certificate (env: VAULT_SKIP_VERIFY)",
    )
    parser.add_argument(
        "--timeout",
        type=str,
        help="Request timeout, e.g. 60 or 1m (env: VAULT_CLIENT_TIMEOUT)",
    )

    # PKI options
    parser.add_argument(
        "--pki-mountpoint",
        type=str,
        help="Path the PKI provider is mounted to (default: /pki)",
    )
    parser.add_argument(
        "--pki-role",
        type=str,
        help="PKI role able to issue the requested FQDN (default: openvpn)",
    )
    revoke_group = parser.add_mutually_exclusive_group()
    revoke_group.add_argument(
        "--auto-revoke",
        action="store_const",
        const=True,
        default=None,
        dest="auto_revoke",
        help="Revoke older certificates for this FQDN before issuing (default)",
    )
    revoke_group.add_argument(
        "--no-auto-revoke",
        action="store_const",
        const=False,
        dest="auto_revoke",
        help="Keep older certificates for this FQDN active",
    )
    parser.add_argument(
        "--ttl",
        type=str,
        help="TTL of issued certificates, e.g. 8760h (default: 8760h)",
    )

    # Output options
    parser.add_argument(
        "--template-dir",
        type=str,
        help="Directory holding client.conf and server.conf (default: .)",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        help="Write rendered configuration to this file instead of stdout",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        dest="show_all",
        help="List: include revoked certificates",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="output_json",
        help="List: output JSON instead of a table",
    )

    # Logging
    parser.add_argument(
        "--log-level",
        type=str,
        help="Log level to use (debug, info, warning, error)",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args(argv)

    if args.action != ACTION_LIST and not args.target:
        target = "SERIAL" if args.action == ACTION_REVOKE_SERIAL else "FQDN"
        parser.error(f"action '{args.action}' requires {target}")

    if args.action == ACTION_LIST and args.target:
        parser.error("action 'list' does not take an argument")

    return args


def _overrides(args: argparse.Namespace) -> dict:
    """Settings given on the command line."""
    return {
        "vault_addr": args.vault_addr,
        "vault_token": args.vault_token,
        "vault_namespace": args.vault_namespace,
        "ca_cert": args.ca_cert,
        "skip_verify": args.skip_verify,
        "timeout": args.timeout,
        "pki_mountpoint": args.pki_mountpoint,
        "pki_role": args.pki_role,
        "auto_revoke": args.auto_revoke,
        "ttl": args.ttl,
        "log_level": args.log_level,
        "template_dir": args.template_dir,
    }


def open_output(output_path: str) -> TextIO:
    """
    Open an output file readable only by its owner.

    The file is not truncated here, so an existing configuration survives
    a failed issuance. Permissions of an existing file are tightened too.

    Raises:
        OSError: If the file cannot be opened for writing
    """
    fd = os.open(output_path, os.O_WRONLY | os.O_CREAT, 0o600)
    try:
        os.fchmod(fd, 0o600)
    except OSError:
        os.close(fd)
        raise
    return os.fdopen(fd, "w")


def write_output(text: str, output: Optional[TextIO] = None) -> None:
    """
    Write rendered output to stdout or to a file opened with open_output().

    Args:
        text: Text to write
        output: Target file, or None for stdout
    """
    if output is None:
        sys.stdout.write(text)
        sys.stdout.flush()
        return

    output.seek(0)
    output.truncate()
    output.write(text)
    output.flush()


def list_certificates(client: VaultPKIClient, show_all: bool, output_json: bool) -> None:
    """Print the certificate directory as a table or JSON."""
    certificates = build_directory(client, include_revoked=show_all)

    if output_json:
        write_output(certificates_to_json(certificates) + "\n", None)
    else:
        write_output(render_certificate_table(certificates, show_status=show_all), None)


def generate_certificate_config(
    client: VaultPKIClient,
    settings: Settings,
    action: str,
    fqdn: str,
    output_path: Optional[str],
) -> None:
    """
    Issue a certificate and render it through the action's template.

    The template is loaded and checked, and the output file opened, before
    any CA call, so neither a broken template nor an unwritable output path
    leads to a revocation.
    """
    template_path = Path(settings.template_dir) / TEMPLATES[action]
    template = load_template(template_path)
    validate_template(template, TEMPLATE_VARIABLES)

    output = open_output(output_path) if output_path else None
    try:
        reconciler = LifecycleReconciler(client)
        issued = reconciler.issue_with_policy(
            fqdn,
            auto_revoke=settings.auto_revoke,
            ttl=format_duration(settings.ttl_duration),
        )
        write_output(render_template(template, issued.template_vars()), output)
    finally:
        if output is not None:
            output.close()

    if output_path:
        get_logger().info(f"Wrote configuration to {output_path}")


def run_action(args: argparse.Namespace, settings: Settings, client: VaultPKIClient) -> None:
    """Dispatch the requested action."""
    if args.action == ACTION_LIST:
        list_certificates(client, args.show_all, args.output_json)
    elif args.action in TEMPLATES:
        generate_certificate_config(client, settings, args.action, args.target, args.output)
    elif args.action == ACTION_REVOKE:
        LifecycleReconciler(client).revoke_by_fqdn(args.target)
    elif args.action == ACTION_REVOKE_SERIAL:
        LifecycleReconciler(client).revoke_by_serial(args.target)


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Exit Codes:
        0 - Action succeeded
        1 - Action failed
        2 - Configuration error

    Returns:
        Exit code
    """
    args = parse_arguments(argv)

    logger = setup_logger(use_colors=not args.no_color)

    try:
        settings = load_settings(args.config, overrides=_overrides(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG_ERROR

    # The config file may pick a different level than the command line
    logger = setup_logger(
        level=parse_log_level(settings.log_level),
        use_colors=not args.no_color,
    )

    client = VaultPKIClient.from_settings(settings)

    try:
        run_action(args, settings, client)
    except (VaultError, TemplateError, OSError) as e:
        logger.failure(f"{args.action} failed: {e}")
        return EXIT_FAILURE
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        if logger.isEnabledFor(logging.DEBUG):
            traceback.print_exc()
        return EXIT_FAILURE

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
