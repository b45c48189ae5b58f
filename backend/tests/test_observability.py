"""
Observability Tests.
"""

import logging

import pytest

from backend.app.core.observability import CorrelationIdFilter, correlation_id_var


def make_record():
    return logging.LogRecord("courier_ledger.test", logging.INFO, __file__, 1, "msg", None, None)


def test_filter_stamps_current_correlation_id():
    token = correlation_id_var.set("req-42")
    try:
        record = make_record()
        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "req-42"
    finally:
        correlation_id_var.reset(token)


def test_filter_defaults_outside_requests():
    record = make_record()
    CorrelationIdFilter().filter(record)
    assert record.correlation_id == "-"


@pytest.mark.asyncio
async def test_generated_correlation_id_on_response(client):
    response = await client.get("/")

    assert response.headers["X-Correlation-ID"]
    assert float(response.headers["X-Process-Time"]) >= 0
