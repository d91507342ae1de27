import io
import logging

import pytest

from feeledger.core.logging_config import configure_logging, reset_logging


@pytest.fixture(autouse=True)
def fresh_logging():
    reset_logging()
    yield
    reset_logging()


def test_configure_logging_writes_feeledger_records() -> None:
    stream = io.StringIO()
    configure_logging("warning", stream=stream)

    logging.getLogger("feeledger.billing.coordinator").info("hidden")
    logging.getLogger("feeledger.billing.coordinator").warning("Refresh of catalog S1 failed")

    output = stream.getvalue()
    assert "hidden" not in output
    assert "WARNING feeledger.billing.coordinator: Refresh of catalog S1 failed" in output


def test_configure_logging_is_idempotent() -> None:
    configure_logging(logging.INFO, stream=io.StringIO())
    configure_logging(logging.DEBUG, stream=io.StringIO())

    logger = logging.getLogger("feeledger")
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
