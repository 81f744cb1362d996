"""Pytest configuration helpers for the storefront project."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from tests import _ensure_repo_on_path


def pytest_configure(config: pytest.Config) -> None:
    """Hook executed by pytest prior to running any tests."""

    _ensure_repo_on_path()


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
    """Drop the cached settings so environment tweaks in one test stay local."""

    from storefront.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
