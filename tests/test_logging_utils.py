"""Tests for the logging helpers."""

import logging

from common.logging_utils import Timer, _ContextFormatter, configure_logging, extra_context


def test_configure_logging_is_idempotent():
    configure_logging("INFO")
    configure_logging("INFO")
    handlers = [h for h in logging.getLogger().handlers if h.name == "nhx-stderr"]
    assert len(handlers) == 1
    assert logging.getLogger().level == logging.INFO


def test_unknown_level_falls_back_to_warning():
    configure_logging("LOUD")
    assert logging.getLogger().level == logging.WARNING


def test_extra_context_drops_none():
    assert extra_context(a=1, b=None) == {"nhx_context": {"a": 1}}


def test_context_only_rendered_at_debug():
    formatter = _ContextFormatter("%(message)s")
    debug = logging.LogRecord("x", logging.DEBUG, __file__, 1, "msg", None, None)
    debug.nhx_context = {"event": "cache"}
    info = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    info.nhx_context = {"event": "cache"}
    assert formatter.format(debug) == "msg [event=cache]"
    assert formatter.format(info) == "msg"


def test_timer():
    with Timer() as t:
        pass
    assert t.duration_ms() >= 0
