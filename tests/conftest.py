"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import os

import pytest

from valheimctl.config import ENV_PREFIX, LEGACY_ENV_KEYS


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the operator's shell configuration out of every test."""
    for key in list(os.environ):
        if key in LEGACY_ENV_KEYS or key.startswith(ENV_PREFIX):
            monkeypatch.delenv(key, raising=False)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip end-to-end tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)
