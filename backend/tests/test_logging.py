"""Tests for tenant-aware logging setup."""

from __future__ import annotations

import io
import logging

from geoassets.core import logging as core_logging


def _record() -> logging.LogRecord:
    return logging.LogRecord("geoassets", logging.INFO, __file__, 1, "msg", (), None)


def test_filter_uses_placeholder_without_tenant() -> None:
    record = _record()
    assert core_logging.TenantContextFilter().filter(record)
    assert record.tenant_id == "-"


def test_filter_copies_current_tenant() -> None:
    token = core_logging.tenant_id_var.set("r1")
    try:
        record = _record()
        core_logging.TenantContextFilter().filter(record)
    finally:
        core_logging.tenant_id_var.reset(token)
    assert record.tenant_id == "r1"


def test_configure_logging_replaces_root_handlers() -> None:
    root = logging.getLogger()
    previous_handlers = list(root.handlers)
    previous_level = root.level
    try:
        core_logging.configure_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

        handler = root.handlers[0]
        stream = io.StringIO()
        assert isinstance(handler, logging.StreamHandler)
        handler.setStream(stream)
        token = core_logging.tenant_id_var.set("r7")
        try:
            logging.getLogger("geoassets.test").info("stored")
        finally:
            core_logging.tenant_id_var.reset(token)
        assert "tenant=r7" in stream.getvalue()
        assert "stored" in stream.getvalue()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in previous_handlers:
            root.addHandler(handler)
        root.setLevel(previous_level)
