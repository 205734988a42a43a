"""Unit tests for the instrumentation module.

OTel interactions are mocked with unittest.mock. ``opentelemetry-api``
is in the test extra so ``SpanKind`` / ``StatusCode`` can be imported
for exact assertions.
"""

import logging
from unittest.mock import MagicMock, patch

import pytest
from opentelemetry.trace import SpanKind, StatusCode

import agentkai.instrumentation as inst
from agentkai.instrumentation import (
    completion_span,
    configure_logging,
    record_error,
    record_usage,
    run_span,
    tool_span,
    uninstrument,
)
from agentkai.streaming import Usage


@pytest.fixture(autouse=True)
def _reset_tracer():
    inst._tracer = None
    yield
    inst._tracer = None


# -------------------------------------------------------------------
# configure_logging()
# -------------------------------------------------------------------


def test_configure_logging_attaches_handlers(tmp_path):
    logger = logging.getLogger("agentkai")
    before = list(logger.handlers)
    log_file = tmp_path / "agentkai.log"
    try:
        configure_logging(logging.DEBUG, log_file=str(log_file))
        added = [h for h in logger.handlers if h not in before]
        assert len(added) == 2
        assert logger.level == logging.DEBUG
        assert all(h.formatter._fmt == inst.LOG_FORMAT for h in added)
    finally:
        for handler in [h for h in logger.handlers if h not in before]:
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)


# -------------------------------------------------------------------
# instrument()
# -------------------------------------------------------------------


class TestInstrument:
    def test_raises_without_otel_installed(self):
        with patch("importlib.util.find_spec", return_value=None):
            with pytest.raises(ImportError, match="pip install agentkai\\[otel\\]"):
                inst.instrument()

    def _mock_otel(self, mock_trace):
        """Patch find_spec + sys.modules for a mock OTel env."""
        return (
            patch("importlib.util.find_spec", return_value=MagicMock()),
            patch.dict(
                "sys.modules",
                {
                    "opentelemetry": MagicMock(trace=mock_trace),
                    "opentelemetry.trace": mock_trace,
                },
            ),
        )

    def test_sets_global_tracer(self):
        mock_tracer = MagicMock()
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = mock_tracer
        mock_trace.NoOpTracer = type("NoOpTracer", (), {})

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            inst.instrument()

        assert inst._tracer is mock_tracer
        mock_trace.get_tracer.assert_called_once_with("agentkai")

    def test_custom_tracer_name(self):
        mock_trace = MagicMock()
        mock_trace.NoOpTracer = type("NoOpTracer", (), {})

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            inst.instrument(tracer_name="my-app")

        mock_trace.get_tracer.assert_called_once_with("my-app")

    def test_logs_message_for_noop_tracer(self, caplog):
        NoOpTracer = type("NoOpTracer", (), {})
        mock_trace = MagicMock()
        mock_trace.get_tracer.return_value = NoOpTracer()
        mock_trace.NoOpTracer = NoOpTracer

        p1, p2 = self._mock_otel(mock_trace)
        with p1, p2:
            with caplog.at_level(logging.INFO, logger="agentkai.instrumentation"):
                inst.instrument()

        assert any("No TracerProvider configured" in r.message for r in caplog.records)


class TestUninstrument:
    def test_clears_tracer(self):
        inst._tracer = MagicMock()
        uninstrument()
        assert inst._tracer is None

    def test_noop_when_already_none(self):
        uninstrument()
        assert inst._tracer is None


# -------------------------------------------------------------------
# Span helpers
# -------------------------------------------------------------------


class TestSpansUninstrumented:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "span_fn,args",
        [
            (run_span, ("gpt-4o", 10)),
            (completion_span, ("openai", "gpt-4o", 0)),
            (tool_span, ("t", "call_1", 0)),
        ],
        ids=["run_span", "completion_span", "tool_span"],
    )
    async def test_span_yields_none_without_tracer(self, span_fn, args):
        async with span_fn(*args) as s:
            assert s is None


class TestSpansInstrumented:
    @pytest.fixture(autouse=True)
    def _set_mock_tracer(self):
        self.mock_span = MagicMock()
        self.mock_tracer = MagicMock()
        self.mock_tracer.start_as_current_span.return_value.__enter__ = (
            MagicMock(return_value=self.mock_span)
        )
        self.mock_tracer.start_as_current_span.return_value.__exit__ = (
            MagicMock(return_value=False)
        )
        inst._tracer = self.mock_tracer

    @pytest.mark.asyncio
    async def test_run_span(self):
        async with run_span("gpt-4o", 5) as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "invoke_agent agentkai",
            attributes={
                "gen_ai.operation.name": "invoke_agent",
                "gen_ai.request.model": "gpt-4o",
                "agentkai.max_rounds": 5,
            },
        )

    @pytest.mark.asyncio
    async def test_completion_span(self):
        async with completion_span("openai", "gpt-4o", 2) as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "chat gpt-4o",
            kind=SpanKind.CLIENT,
            attributes={
                "gen_ai.operation.name": "chat",
                "gen_ai.provider.name": "openai",
                "gen_ai.request.model": "gpt-4o",
                "agentkai.round": 2,
            },
        )

    @pytest.mark.asyncio
    async def test_tool_span(self):
        async with tool_span("lookup", "call_42", 4) as s:
            assert s is self.mock_span

        self.mock_tracer.start_as_current_span.assert_called_once_with(
            "execute_tool lookup",
            attributes={
                "gen_ai.operation.name": "execute_tool",
                "gen_ai.tool.name": "lookup",
                "gen_ai.tool.call.id": "call_42",
                "agentkai.round": 4,
            },
        )


# -------------------------------------------------------------------
# record_usage / record_error
# -------------------------------------------------------------------


class TestRecordUsage:
    def test_noop_on_none_span(self):
        record_usage(None, Usage(10, 5))

    def test_noop_on_none_usage(self):
        span = MagicMock()
        record_usage(span, None)
        span.set_attribute.assert_not_called()

    def test_sets_token_counts(self):
        span = MagicMock()
        record_usage(span, Usage(prompt_tokens=100, completion_tokens=50))

        span.set_attribute.assert_any_call("gen_ai.usage.input_tokens", 100)
        span.set_attribute.assert_any_call("gen_ai.usage.output_tokens", 50)


class TestRecordError:
    def test_sets_status_and_records_exception(self):
        span = MagicMock()
        exc = RuntimeError("boom")
        record_error(span, exc)

        span.set_status.assert_called_once_with(StatusCode.ERROR, "boom")
        span.record_exception.assert_called_once_with(exc)
        span.set_attribute.assert_called_once_with("error.type", "RuntimeError")

    def test_noop_on_none_span(self):
        record_error(None, RuntimeError("boom"))
