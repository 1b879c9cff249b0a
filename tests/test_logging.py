"""Tests for root logger setup."""

import contextlib
import logging
import sys

from tchat.core.logging import DEFAULT_FORMAT, get_logger, setup_logging


@contextlib.contextmanager
def bare_root():
    """Empty the root logger for the block, then put pytest's handlers back."""
    root = logging.getLogger()
    access = logging.getLogger("uvicorn.access")
    saved_handlers, saved_level, access_level = root.handlers[:], root.level, access.level
    root.handlers.clear()
    try:
        yield root
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
        access.setLevel(access_level)


def test_installs_stdout_handler(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")

    with bare_root() as root:
        setup_logging()

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert handler.stream is sys.stdout
        assert handler.formatter._fmt == DEFAULT_FORMAT
        assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_existing_handlers_only_get_the_level(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "WARNING")
    existing = logging.NullHandler()

    with bare_root() as root:
        root.addHandler(existing)
        setup_logging()

        assert root.handlers == [existing]
        assert root.level == logging.WARNING


def test_unknown_level_falls_back_to_info(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "chatty")

    with bare_root() as root:
        setup_logging()
        assert root.level == logging.INFO


def test_get_logger_is_named():
    assert get_logger("tchat.services.broker").name == "tchat.services.broker"
