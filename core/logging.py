# core/logging.py
from __future__ import annotations

import logging
from contextvars import ContextVar

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


def current_request_id() -> str:
    rid = request_id_var.get()
    return "" if rid == "-" else rid


class RequestIDFilter(logging.Filter):
    """Stamp every record with the id of the request (or task) that produced it."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True
