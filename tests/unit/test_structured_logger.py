"""
Tests for run-scoped structured logging.
"""
import json
import logging

import pytest
from structlog.contextvars import get_contextvars

from graph_migrate.monitoring.structured_logger import (
    JSONFormatter,
    LoggingContext,
    OperationLogger,
    configure_logging,
    get_logger,
)


@pytest.fixture
def restore_root_logger():
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield root_logger
    for handler in root_logger.handlers:
        if handler not in handlers:
            handler.close()
    root_logger.handlers[:] = handlers
    root_logger.setLevel(level)


class TestRunContext:
    """Test LoggingContext and OperationLogger."""

    def test_run_id_is_bound_inside_the_block(self):
        with LoggingContext("run-1") as run:
            assert run.run_id == "run-1"
            assert get_contextvars()["run_id"] == "run-1"

        assert "run_id" not in get_contextvars()

    def test_generated_run_ids_differ(self):
        with LoggingContext() as first, LoggingContext() as second:
            assert first.run_id != second.run_id
            assert get_contextvars()["run_id"] == second.run_id

    def test_phase_is_bound_and_reset(self):
        logger = get_logger(__name__, component="tests")

        with LoggingContext("run-2"):
            with OperationLogger(logger, "import_entities") as operation:
                assert get_contextvars() == {"run_id": "run-2", "phase": "import_entities"}
            assert operation.elapsed_ms >= 0
            assert "phase" not in get_contextvars()

    def test_failures_propagate(self):
        logger = get_logger(__name__)

        with pytest.raises(RuntimeError):
            with OperationLogger(logger, "import_relations"):
                raise RuntimeError("store went away")

        assert "phase" not in get_contextvars()


class TestJSONFormatter:
    """Test JSONFormatter."""

    def test_context_is_merged(self):
        record = logging.LogRecord(
            "graph_migrate.migration.runner", logging.WARNING, __file__, 12, "3 records failed", None, None
        )

        with LoggingContext("run-3"):
            entry = json.loads(JSONFormatter().format(record))

        assert entry["level"] == "warning"
        assert entry["logger"] == "graph_migrate.migration.runner"
        assert entry["message"] == "3 records failed"
        assert entry["run_id"] == "run-3"
        assert "phase" not in entry


class TestConfigureLogging:
    """Test configure_logging."""

    def test_handlers_are_replaced(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "migrate.log"

        configure_logging(log_level="debug", json_format=True, file_path=str(log_file))

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 2
        assert all(isinstance(handler.formatter, JSONFormatter) for handler in restore_root_logger.handlers)

        logging.getLogger("graph_migrate.tests").info("written")
        restore_root_logger.handlers[1].flush()
        assert json.loads(log_file.read_text().splitlines()[-1])["message"] == "written"
