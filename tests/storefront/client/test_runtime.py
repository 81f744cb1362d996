"""Tests for the client core composition root."""

from __future__ import annotations

from pathlib import Path

import pytest

from storefront.client.runtime import create_client_core
from storefront.client.storage import FilePersistentStore
from storefront.client.sync import SyncPhase
from storefront.settings import AppSettings
from tests.storefront.conftest import FakeFavoritesApi


@pytest.mark.asyncio
async def test_core_persists_to_configured_directory(tmp_path: Path) -> None:
    settings = AppSettings(client_storage_dir=tmp_path / "state")
    core = create_client_core(settings, api=FakeFavoritesApi())

    assert isinstance(core.storage, FilePersistentStore)
    await core.start()
    core.favorites.toggle("a")
    core.color.set("Green")
    core.theme.set("Dark")
    await core.aclose()

    reopened = create_client_core(settings, api=FakeFavoritesApi())
    reopened.favorites.hydrate()
    assert reopened.favorites.ids == ("a",)
    assert reopened.color.get() == "Green"
    assert reopened.theme.get() == "Dark"
    assert reopened.sync.phase is SyncPhase.ANONYMOUS


@pytest.mark.asyncio
async def test_cores_are_isolated(tmp_path: Path) -> None:
    first = create_client_core(
        AppSettings(client_storage_dir=tmp_path / "one"), api=FakeFavoritesApi()
    )
    second = create_client_core(
        AppSettings(client_storage_dir=tmp_path / "two"), api=FakeFavoritesApi()
    )

    first.favorites.toggle("a")

    assert first.favorites.contains("a") is True
    assert second.favorites.contains("a") is False
    await first.aclose()
    await second.aclose()
