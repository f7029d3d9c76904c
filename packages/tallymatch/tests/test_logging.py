"""Tests for log level selection."""

import logging

from tallymatch.logging import resolve_level


def test_argument_wins(monkeypatch):
    monkeypatch.setenv("TALLYMATCH_LOG_LEVEL", "ERROR")
    assert resolve_level("debug") == logging.DEBUG


def test_environment_order(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.delenv("TALLYMATCH_LOG_LEVEL", raising=False)
    assert resolve_level() == logging.INFO
    monkeypatch.setenv("TALLYMATCH_LOG_LEVEL", "ERROR")
    assert resolve_level() == logging.ERROR


def test_default_and_unknown_names(monkeypatch):
    monkeypatch.delenv("TALLYMATCH_LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert resolve_level() == logging.WARNING
    assert resolve_level("loud") == logging.WARNING
