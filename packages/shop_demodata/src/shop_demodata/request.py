from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Self


@dataclass(slots=True, frozen=True)
class DemodataEntry:
    entity_name: str
    count: int
    options: dict[str, Any] = field(default_factory=dict)


class DemodataRequest:
    """
    Entities to generate, in the order they were added.

    Adding an entity twice replaces its count and options but keeps its
    position.

    Example:
        >>> request = DemodataRequest().add("blog_tag", 20).add("blog_article", 100)
    """

    def __init__(self) -> None:
        self._entries: dict[str, DemodataEntry] = {}

    def add(self, entity_name: str, count: int, **options: Any) -> Self:
        if count < 0:
            msg = f"Count for {entity_name} must not be negative, got {count}"
            raise ValueError(msg)
        self._entries[entity_name] = DemodataEntry(entity_name, count, options)
        return self

    def get(self, entity_name: str) -> DemodataEntry | None:
        return self._entries.get(entity_name)

    def entries(self) -> list[DemodataEntry]:
        return list(self._entries.values())

    def __iter__(self) -> Iterator[DemodataEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
