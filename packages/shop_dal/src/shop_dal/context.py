from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING
from uuid import UUID

if TYPE_CHECKING:
    from shop_core import ShopSettings

LIVE_VERSION = UUID("0fa91ce3e96a4bc2be4bd9ce752c3425")


@dataclass(frozen=True, slots=True)
class Context:
    """
    State carried into every read and write.

    Attributes:
        version_id: Version of versioned rows to read and write.
        locale: Language of translated values in reads and of translated
            fields given at the top level of a write payload.
        fallback_locale: Language used when ``locale`` has no translation.
    """

    version_id: UUID = LIVE_VERSION
    locale: str = "en-GB"
    fallback_locale: str = "en-GB"

    @classmethod
    def create_default(cls, settings: ShopSettings | None = None) -> Context:
        if settings is None:
            from shop_core import shop_settings

            settings = shop_settings
        return cls(locale=settings.DEFAULT_LOCALE, fallback_locale=settings.DEFAULT_LOCALE)

    def with_locale(self, locale: str) -> Context:
        return replace(self, locale=locale)

    def with_version(self, version_id: UUID) -> Context:
        return replace(self, version_id=version_id)
