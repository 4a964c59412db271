"""
Definitions every installation carries regardless of plugins.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import NAMESPACE_URL, UUID, uuid5

from .definition import EntityDefinition
from .fields import Field, IdField, StringField
from .flags import ApiAware, PrimaryKey, Required

LANGUAGE_NAMES = {
    "en-GB": "English",
    "en-US": "English (US)",
    "de-DE": "Deutsch",
    "fr-FR": "Français",
    "nl-NL": "Nederlands",
}


class LanguageDefinition(EntityDefinition):
    """Languages translations are written for, addressed by locale code."""

    ENTITY_NAME = "language"

    def define_fields(self) -> list[Field]:
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            StringField("locale", "locale", 16, unique=True).add_flags(
                Required(), ApiAware()
            ),
            StringField("name", "name").add_flags(Required(), ApiAware()),
        ]


def language_id(locale: str) -> UUID:
    """Stable id of the language for ``locale`` across installations."""
    return uuid5(NAMESPACE_URL, f"shop:language:{locale}")


def language_payloads(locales: Iterable[str]) -> list[dict[str, Any]]:
    """Write payloads seeding one language per locale code."""
    return [
        {
            "id": language_id(locale),
            "locale": locale,
            "name": LANGUAGE_NAMES.get(locale, locale),
        }
        for locale in locales
    ]
