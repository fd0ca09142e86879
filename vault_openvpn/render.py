"""
Output rendering.

Formats the certificate directory as a plain-text table or JSON, and
renders issued certificate material into configuration templates.

Templates use ``{{ .Name }}`` (or ``{{Name}}``) placeholders, e.g.::

    <ca>
    {{ .CertAuthority }}
    </ca>
"""

import json
import re
from pathlib import Path
from typing import Dict, Iterable, List, Sequence

from .directory import Certificate


DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

TABLE_HEADERS = ["FQDN", "NOT BEFORE", "NOT AFTER", "SERIAL"]

_PLACEHOLDER = re.compile(r"\{\{\s*\.?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


class TemplateError(Exception):
    """Raised when a configuration template cannot be loaded or rendered."""
    pass


def sort_certificates(certificates: Iterable[Certificate]) -> List[Certificate]:
    """Order certificates by FQDN, then by start of validity."""
    return sorted(certificates, key=lambda c: (c.fqdn, c.not_before))


def _row(cert: Certificate, show_status: bool) -> List[str]:
    row = [
        cert.fqdn,
        cert.not_before.strftime(DATE_FORMAT),
        cert.not_after.strftime(DATE_FORMAT),
        cert.serial,
    ]
    if show_status:
        row.append("revoked" if cert.revoked else "valid")
    return row


def render_certificate_table(
    certificates: Iterable[Certificate],
    show_status: bool = False,
) -> str:
    """
    Render certificates as a borderless, column-aligned table.

    Args:
        certificates: Certificates in any order
        show_status: Add a STATUS column (used when listing revoked ones too)

    Returns:
        Table text ending with a newline
    """
    headers = TABLE_HEADERS + (["STATUS"] if show_status else [])
    rows = [_row(cert, show_status) for cert in sort_certificates(certificates)]

    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells: Sequence[str]) -> str:
        return " | ".join(cell.ljust(w) for cell, w in zip(cells, widths)).rstrip()

    lines = [line(headers), "-+-".join("-" * w for w in widths)]
    lines.extend(line(row) for row in rows)

    return "\n".join(lines) + "\n"


def certificates_to_json(certificates: Iterable[Certificate], indent: int = 2) -> str:
    """
    Render certificates as a JSON array in listing order.

    Args:
        certificates: Certificates in any order
        indent: JSON indentation

    Returns:
        JSON text
    """
    return json.dumps(
        [
            {
                "fqdn": cert.fqdn,
                "serial": cert.serial,
                "not_before": cert.not_before.isoformat(),
                "not_after": cert.not_after.isoformat(),
                "revoked": cert.revoked,
            }
            for cert in sort_certificates(certificates)
        ],
        indent=indent,
    )


def load_template(template_path: Path) -> str:
    """
    Read a configuration template.

    Raises:
        TemplateError: If the file cannot be read
    """
    try:
        return Path(template_path).read_text()
    except OSError as e:
        raise TemplateError(f"Unable to read template {template_path}: {e}") from e


def validate_template(template: str, names: Iterable[str]) -> None:
    """
    Check that every placeholder in the template is a known name.

    Raises:
        TemplateError: If the template references an unknown name
    """
    known = set(names)
    unknown = sorted({name for name in _PLACEHOLDER.findall(template) if name not in known})
    if unknown:
        raise TemplateError(f"Template references unknown values: {', '.join(unknown)}")


def render_template(template: str, variables: Dict[str, str]) -> str:
    """
    Substitute placeholders in template text.

    Args:
        template: Template text
        variables: Placeholder values by name

    Returns:
        Rendered text

    Raises:
        TemplateError: If the template references an unknown name
    """
    validate_template(template, variables)
    return _PLACEHOLDER.sub(lambda m: variables[m.group(1)], template)
