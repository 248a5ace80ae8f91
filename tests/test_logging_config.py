"""Tests for log formatting and secret redaction."""

import json
import logging

import pytest

from doctype.logging_config import _JsonFormatter, _SecretFilter, setup_logging


def _record(msg, *args, **extra):
    record = logging.LogRecord("doctype.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSecretFilter:
    @pytest.mark.parametrize("secret, kept", [
        ("sk-abcdefghijklmnopqrstuvwxyz123456", ""),
        ("Bearer abcdefghijklmnopqrstuvwxyz", "Bearer "),
        ("api_key=supersecretvalue", "api_key="),
    ])
    def test_redacts(self, secret, kept):
        record = _record("calling with %s", secret)
        _SecretFilter().filter(record)
        assert record.getMessage() == f"calling with {kept}***REDACTED***"

    def test_plain_text_untouched(self):
        record = _record("updated %d anchors in %s", 3, "docs/auth.md")
        _SecretFilter().filter(record)
        assert record.getMessage() == "updated 3 anchors in docs/auth.md"


class TestJsonFormatter:
    def test_fields_and_extras(self):
        line = _JsonFormatter().format(_record("hello %s", "world", anchor_id="a1"))
        payload = json.loads(line)
        assert payload["message"] == "hello world"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "doctype.test"
        assert payload["anchor_id"] == "a1"
        assert "args" not in payload


class TestSetupLogging:
    def test_installs_single_handler(self, restore_root):
        setup_logging("DEBUG", "json")
        setup_logging("WARNING", "text")
        assert len(restore_root.handlers) == 1
        assert restore_root.level == logging.WARNING
        assert logging.getLogger("litellm").level == logging.WARNING

    def test_json_output(self, restore_root, capsys):
        setup_logging("INFO", "json")
        logging.getLogger("doctype.test").info("key is sk-abcdefghijklmnopqrstuvwxyz0000")
        payload = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert payload["message"] == "key is ***REDACTED***"
