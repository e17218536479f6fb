"""Tests for logging formatters and the metrics collector."""

import json
import logging

from hybrid_kernels.core.logging import (
    ColorFormatter,
    StructuredFormatter,
    backend_tag,
    setup_logging,
)
from hybrid_kernels.core.metrics import MetricsCollector, metrics


def _record(msg="hello", **extra):
    record = logging.LogRecord("hybrid_kernels.test", logging.INFO, __file__, 1, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ── Logging ────────────────────────────────────────────────


class TestLogging:
    def test_structured_formatter_includes_extra_fields(self):
        line = StructuredFormatter().format(
            _record(kernel_id="k1", backend="remote", unrelated="x")
        )
        entry = json.loads(line)

        assert entry["msg"] == "hello"
        assert entry["level"] == "INFO"
        assert entry["kernel_id"] == "k1"
        assert entry["backend"] == "remote"
        assert "unrelated" not in entry

    def test_color_formatter_restores_record(self):
        record = _record()
        output = ColorFormatter(use_color=True).format(record)
        assert "\033[" in output
        assert record.levelname == "INFO"
        assert record.name == "hybrid_kernels.test"

    def test_plain_formatter(self):
        output = ColorFormatter(use_color=False).format(_record())
        assert "\033[" not in output
        assert "INFO: hello" in output

    def test_plain_formatter_tags_routed_records(self):
        output = ColorFormatter(use_color=False).format(
            _record("Routing kernel start", op="start", backend="remote", kernel_id="1a2b3c4d5e6f")
        )
        assert "INFO: [remote k:1a2b3c4d] Routing kernel start" in output

    def test_backend_tag_with_session_id_and_color(self):
        assert backend_tag(_record(backend="local", session_id="s-123")) == "[local s:s-123] "
        assert backend_tag(_record()) == ""
        colored = backend_tag(_record(backend="remote"), use_color=True)
        assert colored.startswith("\033[35m[remote]")

    def test_structured_formatter_includes_routing_op(self):
        entry = json.loads(StructuredFormatter().format(_record(op="shutdown", backend="local")))
        assert entry["op"] == "shutdown"

    def test_setup_logging_json_and_quiet_httpx(self, monkeypatch):
        monkeypatch.setenv("HYBRID_KERNELS_LOG_FORMAT", "json")
        monkeypatch.setenv("HYBRID_KERNELS_LOG_LEVEL", "DEBUG")
        root = logging.getLogger()
        saved = root.handlers[:], root.level
        try:
            setup_logging()
            assert isinstance(root.handlers[-1].formatter, StructuredFormatter)
            assert root.level == logging.DEBUG
            assert logging.getLogger("httpx").level == logging.WARNING
        finally:
            root.handlers[:] = saved[0]
            root.setLevel(saved[1])


# ── Metrics ────────────────────────────────────────────────


class TestMetrics:
    def test_singleton(self):
        assert MetricsCollector.get() is metrics

    def test_counters_with_labels(self):
        collector = MetricsCollector()
        collector.inc("routed", labels={"op": "start", "backend": "local"})
        collector.inc("routed", labels={"backend": "local", "op": "start"})

        assert collector.counter("routed", {"op": "start", "backend": "local"}) == 2
        assert collector.counter("routed") == 0
        assert "routed{backend=local,op=start}" in collector.snapshot()["counters"]

    def test_gauges_and_reset(self):
        collector = MetricsCollector()
        collector.gauge_set("specs", 3)
        assert collector.gauge("specs") == 3
        collector.reset()
        assert collector.gauge("specs") is None
        assert collector.snapshot()["counters"] == {}
