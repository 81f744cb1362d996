"""Scalar user preferences (color, theme) restricted to an allowed set."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel

from storefront.client.storage import PersistentStore
from storefront.client.versioned import UnrecognizedStateError, VersionedStoreController

logger = logging.getLogger(__name__)

COLOR_STORE_KEY = "colorStore"
THEME_STORE_KEY = "themeStore"
PREFERENCE_STORE_VERSION = 1

ALLOWED_COLORS: tuple[str, ...] = ("Green",)
DEFAULT_COLOR = "Green"
# ``None`` means the legacy value has no replacement: clear it and use the default.
LEGACY_COLOR_REMAP: dict[str, str | None] = {"Red": None, "Gold": None}

ALLOWED_THEMES: tuple[str, ...] = ("Light", "Dark", "System")
DEFAULT_THEME = "Light"


class InvalidPreferenceError(ValueError):
    """Raised when a value outside the allowed set is written."""


@dataclass(frozen=True)
class PreferenceDomain:
    name: str
    allowed: tuple[str, ...]
    default: str
    legacy_remap: Mapping[str, str | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.default not in self.allowed:
            raise ValueError(f"Default {self.default!r} is not an allowed {self.name}")

    def resolve_legacy(self, value: Any) -> str:
        """Map a legacy value to an allowed one (or the default when unmapped)."""

        if isinstance(value, str) and value in self.allowed:
            return value
        if isinstance(value, str) and value in self.legacy_remap:
            return self.legacy_remap[value] or self.default
        raise UnrecognizedStateError(f"Unknown {self.name} value {value!r}")

    def check(self, state: PreferenceSnapshot) -> None:
        if state.value not in self.allowed:
            raise UnrecognizedStateError(f"{self.name} value {state.value!r} is not allowed")


class PreferenceSnapshot(BaseModel):
    value: str = ""


COLOR_DOMAIN = PreferenceDomain(
    name="color",
    allowed=ALLOWED_COLORS,
    default=DEFAULT_COLOR,
    legacy_remap=LEGACY_COLOR_REMAP,
)
THEME_DOMAIN = PreferenceDomain(name="theme", allowed=ALLOWED_THEMES, default=DEFAULT_THEME)


class LocalScalarStore:
    """One preference value persisted through a versioned controller."""

    def __init__(
        self,
        controller: VersionedStoreController[PreferenceSnapshot],
        domain: PreferenceDomain,
    ) -> None:
        self._controller = controller
        self._domain = domain

    @property
    def allowed(self) -> tuple[str, ...]:
        return self._domain.allowed

    @property
    def domain(self) -> PreferenceDomain:
        return self._domain

    def get(self) -> str:
        value = self._controller.load().value
        return value or self._domain.default

    def set(self, value: str) -> None:
        if value not in self._domain.allowed:
            raise InvalidPreferenceError(
                f"{value!r} is not a valid {self._domain.name}; "
                f"expected one of {', '.join(self._domain.allowed)}"
            )
        self._controller.save(PreferenceSnapshot(value=value))

    async def flush(self) -> None:
        await self._controller.flush()


def _preference_controller(
    store: PersistentStore,
    key: str,
    domain: PreferenceDomain,
    migrate_v0,
) -> VersionedStoreController[PreferenceSnapshot]:
    return VersionedStoreController(
        store,
        key,
        model=PreferenceSnapshot,
        version=PREFERENCE_STORE_VERSION,
        migrations={0: migrate_v0},
        check=domain.check,
    )


def _migrate_color_v0(state: Any) -> dict[str, str]:
    if not isinstance(state, dict):
        raise UnrecognizedStateError("legacy color state is not an object")
    return {"value": COLOR_DOMAIN.resolve_legacy(state.get("userColor"))}


def _migrate_theme_v0(state: Any) -> dict[str, str]:
    if not isinstance(state, dict) or not isinstance(state.get("theme"), str):
        raise UnrecognizedStateError("legacy theme state has no theme")
    return {"value": THEME_DOMAIN.resolve_legacy(state["theme"].strip().capitalize())}


def create_color_store(store: PersistentStore) -> LocalScalarStore:
    controller = _preference_controller(store, COLOR_STORE_KEY, COLOR_DOMAIN, _migrate_color_v0)
    return LocalScalarStore(controller, COLOR_DOMAIN)


def create_theme_store(store: PersistentStore) -> LocalScalarStore:
    controller = _preference_controller(store, THEME_STORE_KEY, THEME_DOMAIN, _migrate_theme_v0)
    return LocalScalarStore(controller, THEME_DOMAIN)


__all__ = [
    "ALLOWED_COLORS",
    "ALLOWED_THEMES",
    "COLOR_DOMAIN",
    "COLOR_STORE_KEY",
    "DEFAULT_COLOR",
    "DEFAULT_THEME",
    "InvalidPreferenceError",
    "LEGACY_COLOR_REMAP",
    "LocalScalarStore",
    "PreferenceDomain",
    "PreferenceSnapshot",
    "THEME_DOMAIN",
    "THEME_STORE_KEY",
    "create_color_store",
    "create_theme_store",
]
