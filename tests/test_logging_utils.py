"""
Tests for structured logging helpers.
"""

import io
import json
import logging
import sys

from span_object_storage.exceptions import PartialWriteError
from span_object_storage.logging_utils import (
    PACKAGE_LOGGER,
    StorageLoggerAdapter,
    StructuredJsonFormatter,
    configure_structured_logging,
)


def make_record(**extra):
    record = logging.LogRecord(
        name="span_object_storage.writer",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Stored object %s",
        args=(7,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredJsonFormatter:
    def test_core_fields(self):
        line = StructuredJsonFormatter().format(make_record())
        payload = json.loads(line)

        assert payload["level"] == "INFO"
        assert payload["logger"] == "span_object_storage.writer"
        assert payload["message"] == "Stored object 7"
        assert "timestamp" in payload

    def test_extra_fields_included(self):
        payload = json.loads(StructuredJsonFormatter().format(make_record(target=7, raw=b"x")))

        assert payload["target"] == 7
        assert payload["raw"] == "b'x'"

    def test_exception_included(self):
        try:
            raise ValueError("bad span")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(StructuredJsonFormatter().format(record))
        assert "bad span" in payload["exception"]
        assert "error" not in payload

    def test_storage_error_details_included(self):
        try:
            raise PartialWriteError(4, 10, 6)
        except PartialWriteError:
            record = make_record()
            record.exc_info = sys.exc_info()

        payload = json.loads(StructuredJsonFormatter().format(record))

        assert payload["error"] == {
            "type": "PartialWriteError",
            "details": {"target": 4, "expected_bytes": 10, "written_bytes": 6},
        }


class TestHelpers:
    def test_configure_defaults_to_package_logger(self):
        stream = io.StringIO()
        logger = configure_structured_logging(logging.INFO, stream=stream)
        try:
            logging.getLogger("span_object_storage.writer").info("Stored object 3")
            propagates = logger.propagate
        finally:
            logger.handlers.clear()
            logger.propagate = True
            logger.setLevel(logging.NOTSET)

        assert logger.name == PACKAGE_LOGGER
        assert propagates is False
        record = json.loads(stream.getvalue())
        assert record["logger"] == "span_object_storage.writer"
        assert record["message"] == "Stored object 3"

    def test_configure_replaces_handlers(self):
        logger = configure_structured_logging(logging.DEBUG, "span_object_storage.test")
        logger = configure_structured_logging(logging.DEBUG, "span_object_storage.test")

        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, StructuredJsonFormatter)
        assert logger.level == logging.DEBUG

    def test_adapter_adds_context(self, caplog):
        logger = logging.getLogger("span_object_storage.adapter")
        adapter = StorageLoggerAdapter(logger, {"target": 3})

        with caplog.at_level(logging.INFO, logger="span_object_storage.adapter"):
            adapter.info("writing")

        assert caplog.records[0].target == 3

    def test_adapter_call_extra_wins(self, caplog):
        logger = logging.getLogger("span_object_storage.adapter")
        adapter = StorageLoggerAdapter(logger, {"target": 3, "operation": "write"})

        with caplog.at_level(logging.INFO, logger="span_object_storage.adapter"):
            adapter.info("reading", extra={"operation": "read"})

        assert caplog.records[0].target == 3
        assert caplog.records[0].operation == "read"
