from __future__ import annotations

import json
import logging
import threading

from converge.utils.logging import ConsoleFormatter, ContextFilter, JSONFormatter, LogContext, setup_logging


def make_record(message: str = "planned create") -> logging.LogRecord:
    record = logging.LogRecord("converge.test", logging.INFO, __file__, 1, message, None, None)
    ContextFilter().filter(record)
    return record


def test_context_fields_reach_json_output():
    with LogContext(resource_type="memory:Object", action="plan"):
        record = make_record()

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "planned create"
    assert entry["resource_type"] == "memory:Object"
    assert entry["action"] == "plan"


def test_nested_contexts_override_and_restore():
    with LogContext(resource_type="memory:Object", action="apply"):
        with LogContext(action="replace"):
            inner = make_record()
        outer = make_record()
    after = make_record()

    assert (inner.resource_type, inner.action) == ("memory:Object", "replace")
    assert outer.action == "apply"
    assert not hasattr(after, "resource_type")


def test_console_lines_are_prefixed_with_resource():
    with LogContext(resource_type="null_resource", action="apply"):
        record = make_record("done")

    assert "[null_resource:apply] done" in ConsoleFormatter().format(record)


def test_contexts_are_isolated_between_threads():
    seen = {}
    entered = threading.Event()
    release = threading.Event()

    def worker():
        with LogContext(resource_type="aws:SQS.Queue"):
            entered.set()
            release.wait(5)
            seen["worker"] = make_record().resource_type

    thread = threading.Thread(target=worker)
    thread.start()
    entered.wait(5)
    seen["main"] = getattr(make_record(), "resource_type", None)
    release.set()
    thread.join()

    assert seen == {"worker": "aws:SQS.Queue", "main": None}


def test_setup_logging_writes_json_lines(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        setup_logging("warning", tmp_path)
        with LogContext(resource_type="memory:Object"):
            logging.getLogger("converge.test").debug("kept in the file")
        for handler in root.handlers:
            handler.flush()

        lines = [
            json.loads(line)
            for path in tmp_path.glob("converge-*.jsonl")
            for line in path.read_text().splitlines()
        ]
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)

    assert any(
        line["message"] == "kept in the file" and line["resource_type"] == "memory:Object"
        for line in lines
    )
