"""Shared fixtures."""

import pytest
from loguru import logger

from svcfwd.models.target import Target

TEST_COMPONENT = "tests.svcfwd"


class LogCapture:
    """loguru sink keeping ``(level, message)`` pairs."""

    def __init__(self):
        self.records: list[tuple[str, str]] = []

    def __call__(self, message):
        record = message.record
        self.records.append((record["level"].name, record["message"]))

    @property
    def text(self) -> str:
        return "\n".join(f"{level} {text}" for level, text in self.records)


@pytest.fixture
def test_log():
    """A logger bound to the test component, passed as ``log=``."""
    return logger.bind(component=TEST_COMPONENT)


@pytest.fixture
def log_capture():
    """Records logged through ``test_log``."""
    capture = LogCapture()
    sink_id = logger.add(
        capture,
        level="TRACE",
        format="{message}",
        filter=lambda record: record["extra"].get("component") == TEST_COMPONENT,
    )
    yield capture
    logger.remove(sink_id)


@pytest.fixture
def make_target():
    def _make(service, namespace="default", context="ctx-a", aliases=None, ports=None):
        return Target(
            context=context,
            namespace=namespace,
            service=service,
            aliases=list(aliases or []),
            ports=dict(ports or {}),
        )

    return _make
