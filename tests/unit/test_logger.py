"""Unit tests for logging setup."""

import logging

import pytest

from vault_openvpn.logger import (
    ColoredFormatter,
    StructuredLogger,
    get_logger,
    parse_log_level,
    setup_logger,
)


def _record(msg, level=logging.INFO, fields=None):
    record = logging.LogRecord("VaultOpenVPN", level, __file__, 1, msg, None, None)
    if fields is not None:
        record.fields = fields
    return record


def test_event_fields_are_appended():
    formatter = ColoredFormatter(fmt="%(message)s", use_colors=False)
    record = _record("Revoked certificate", fields={"serial": "01:02", "fqdn": "a.example.com"})

    assert formatter.format(record) == "Revoked certificate fqdn=a.example.com serial=01:02"
    assert record.msg == "Revoked certificate"


def test_plain_message_is_unchanged():
    formatter = ColoredFormatter(fmt="[%(levelname)s] %(message)s", use_colors=False)
    assert formatter.format(_record("hello", logging.WARNING)) == "[WARNING] hello"


def test_event_attaches_fields(caplog):
    logger = get_logger()
    with caplog.at_level(logging.INFO):
        logger.event("Generated new certificate", fqdn="vpn.example.com", serial="0A")

    record = caplog.records[-1]
    assert record.fields == {"fqdn": "vpn.example.com", "serial": "0A"}


def test_setup_logger_level_and_class():
    logger = setup_logger(level=logging.WARNING, use_colors=False)

    assert isinstance(logger, StructuredLogger)
    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1
    assert get_logger() is logger


def test_log_file(tmp_path):
    log_file = tmp_path / "vault-openvpn.log"
    logger = setup_logger(level=logging.INFO, use_colors=False, log_file=str(log_file))

    logger.event("Revoked certificate", fqdn="a", serial="01")
    for handler in logger.handlers:
        handler.flush()

    assert "Revoked certificate fqdn=a serial=01" in log_file.read_text()


@pytest.mark.parametrize("name,level", [
    ("debug", logging.DEBUG),
    ("INFO", logging.INFO),
    ("warning", logging.WARNING),
    ("error", logging.ERROR),
])
def test_parse_log_level(name, level):
    assert parse_log_level(name) == level


def test_parse_unknown_log_level():
    with pytest.raises(ValueError):
        parse_log_level("verbose")
