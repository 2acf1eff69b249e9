"""Tests for sensitive data filtering in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from kvlimiter.adapters.rate_limit.distributed import DistributedRateLimiter
from kvlimiter.adapters.store.in_memory import InMemoryKeyValueStore
from kvlimiter.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    set_request_id,
)
from kvlimiter.utils.key_builder import hash_key


@pytest.fixture
def capture():
    """Attach a JSON handler to a fresh logger and return (logger, stream)."""

    def _build(name: str) -> tuple[logging.Logger, StringIO]:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        logger.handlers.clear()
        logger.propagate = False

        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.addFilter(RequestIdFilter())
        handler.addFilter(SensitiveDataFilter())
        handler.setFormatter(JsonFormatter())
        logger.addHandler(handler)
        return logger, stream

    return _build


def test_redacts_api_keys_and_unique_keys(capture):
    logger, stream = capture("test_redaction")

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "unique_key": "api_key:sk-secret-123",
            "key_hash": "abcdef0123456789",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "[REDACTED]" in output
    assert "abcdef0123456789" in output


def test_redacts_nested_store_credentials(capture):
    logger, stream = capture("test_nested")

    logger.info(
        "store_event",
        extra={"store": {"url": "redis://:hunter2@cache:6379/0", "backend": "redis"}},
    )

    output = stream.getvalue()
    assert "hunter2" not in output
    assert "redis" in output


def test_safe_fields_pass_through(capture):
    logger, stream = capture("test_safe_fields")

    logger.info("safe_event", extra={"wait_s": 1.6, "to_consume": 1.0})

    record = json.loads(stream.getvalue())
    assert record["message"] == "safe_event"
    assert record["wait_s"] == 1.6
    assert "[REDACTED]" not in stream.getvalue()


def test_request_id_is_attached_from_context(capture):
    logger, stream = capture("test_request_id")

    set_request_id("req-123")
    try:
        logger.info("correlated")
    finally:
        clear_request_id()

    assert json.loads(stream.getvalue())["request_id"] == "req-123"


def test_limiter_logs_hash_not_raw_key(capture, fake_time):
    logger, stream = capture("kvlimiter.adapters.rate_limit.distributed")
    limiter = DistributedRateLimiter(
        InMemoryKeyValueStore(clock=fake_time.time),
        key_prefix="test",
        max_requests=1,
        period=8,
        clock=fake_time.time,
    )

    limiter.exceeded("user@example.com")
    limiter.exceeded("user@example.com")

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    events = [line["message"] for line in lines]
    assert events == ["rate_limit.admitted", "rate_limit.rejected"]
    assert lines[1]["wait_s"] == pytest.approx(8.0)
    assert "user@example.com" not in stream.getvalue()
    assert len(lines[1]["key_hash"]) == 16
    assert {line["mode"] for line in lines} == {"cas"}


def test_raw_unique_key_becomes_key_hash(capture):
    logger, stream = capture("test_unique_key_hash")

    logger.info("lookup", extra={"unique_key": "ip:203.0.113.7"})

    record = json.loads(stream.getvalue())
    assert record["unique_key"] == "[REDACTED]"
    assert record["key_hash"] == hash_key("ip:203.0.113.7")
    assert "203.0.113.7" not in stream.getvalue()


def test_rate_limit_fields_follow_the_envelope(capture):
    logger, stream = capture("test_field_order")

    logger.warning(
        "rate_limit.lock_failed",
        extra={"elapsed_s": 1.2, "attempts": 3, "mode": "locking", "key_hash": "abc"},
    )

    fields = list(json.loads(stream.getvalue()))
    assert fields[:7] == [
        "timestamp",
        "level",
        "logger",
        "message",
        "key_hash",
        "mode",
        "attempts",
    ]
    assert "elapsed_s" in fields[7:]
