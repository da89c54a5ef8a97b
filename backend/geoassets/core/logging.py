"""Logging setup with the current tenant injected into every record."""

from __future__ import annotations

import contextvars
import logging
import sys

tenant_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "tenant_id",
    default=None,
)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | tenant=%(tenant_id)s | "
    "%(message)s"
)


class TenantContextFilter(logging.Filter):
    """Copy the tenant id from the context variable onto each record.

    A ``-`` placeholder is used outside of a tenant-scoped request so the
    format string never fails.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = tenant_id_var.get() or "-"
        return True


def configure_logging(level: int | str = logging.INFO) -> None:
    """Configure root logging with the tenant-aware format.

    Replaces any handlers installed earlier (for example by basicConfig)
    with a single stdout handler.

    Args:
        level: Log level as an int or a level name such as ``"DEBUG"``.
    """
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(TenantContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
