"""
Plugin registration.

A plugin bundles entity definitions, demo data generators and CLI command
registrars. Installed distributions expose one through the ``shop.plugins``
entry-point group::

    [project.entry-points."shop.plugins"]
    blog = "shop_blog.plugin:plugin"

The entry point may name a :class:`Plugin` instance or a factory returning
one. A plugin that fails to import or does not produce a :class:`Plugin` is
logged and skipped; the remaining plugins still load.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from importlib import metadata
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import typer
    from shop_dal import EntityDefinition
    from shop_demodata import DemodataGenerator

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "shop.plugins"

CommandRegistrar = Callable[["typer.Typer"], None]


@dataclass
class Plugin:
    name: str
    definitions: list[type[EntityDefinition] | EntityDefinition] = field(default_factory=list)
    generators: list[DemodataGenerator] = field(default_factory=list)
    commands: list[CommandRegistrar] = field(default_factory=list)


def _iter_entry_points(group: str) -> Iterable[metadata.EntryPoint]:
    """Entry points of ``group``; patched in tests."""
    return metadata.entry_points().select(group=group)


def load_plugins(group: str = ENTRY_POINT_GROUP) -> list[Plugin]:
    plugins: list[Plugin] = []
    seen: set[str] = set()

    for ep in _iter_entry_points(group):
        try:
            loaded = ep.load()
            plugin = loaded if isinstance(loaded, Plugin) else loaded()
        except Exception as exc:
            logger.warning(
                "Failed to load plugin; entry_point=%s error=%s: %s",
                ep.name,
                type(exc).__name__,
                exc,
            )
            continue

        if not isinstance(plugin, Plugin):
            logger.warning("Entry point %s did not return a Plugin; skipped", ep.name)
            continue
        if plugin.name in seen:
            logger.warning("Plugin %s is registered twice; skipped", plugin.name)
            continue

        seen.add(plugin.name)
        plugins.append(plugin)
        logger.debug("Loaded plugin %s from %s", plugin.name, ep.value)

    return plugins
