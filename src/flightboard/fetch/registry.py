"""Adapter registry: @register decorator, get_adapter(), build_adapters()."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flightboard.fetch.http import HttpClient

if TYPE_CHECKING:
    from flightboard.config import Settings
    from flightboard.fetch import SourceAdapter

logger = logging.getLogger(__name__)

_ADAPTERS: dict[str, type] = {}


def register(cls: type) -> type:
    """Class decorator that registers an adapter under its ``name``."""
    _ADAPTERS[cls.name] = cls
    return cls


def available() -> list[str]:
    _ensure_loaded()
    return list(_ADAPTERS.keys())


def get_adapter(
    name: str,
    settings: Settings,
    use_cache: bool = True,
) -> SourceAdapter:
    """Instantiate one registered adapter with its own HTTP client."""
    _ensure_loaded()
    if name not in _ADAPTERS:
        raise KeyError(f"Unknown provider '{name}'. Available: {', '.join(_ADAPTERS)}")
    client = HttpClient(name, timeout=settings.fetch.timeout_s, use_cache=use_cache)
    return _ADAPTERS[name](settings, client=client)


def build_adapters(
    settings: Settings,
    names: list[str] | None = None,
    use_cache: bool = True,
) -> list[SourceAdapter]:
    """Adapters for the configured schedule providers, in precedence-neutral order."""
    names = names if names is not None else settings.providers
    adapters = []
    for name in names:
        try:
            adapters.append(get_adapter(name, settings, use_cache=use_cache))
        except KeyError:
            logger.warning("Ignoring unknown provider %r", name)
    return adapters


_loaded = False


def _ensure_loaded() -> None:
    """Import all adapter modules so @register decorators run."""
    global _loaded
    if _loaded:
        return
    _loaded = True

    import flightboard.fetch.aviationstack  # noqa: F401
