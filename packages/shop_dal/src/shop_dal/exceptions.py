from __future__ import annotations

from dataclasses import dataclass


class ShopDALError(Exception):
    """Base class for all data abstraction layer exceptions."""


class DefinitionError(ShopDALError):
    """Raised when entity definitions are declared inconsistently."""


class DefinitionNotFoundError(DefinitionError, LookupError):
    """Raised when an entity name is not registered."""

    def __init__(self, entity_name: str):
        super().__init__(f'Entity definition "{entity_name}" is not registered')
        self.entity_name = entity_name


class FieldValueError(ShopDALError, ValueError):
    """Raised by a field when a payload value cannot be stored."""


class WriteError(ShopDALError):
    """Raised when the database rejects a write."""


class RestrictDeleteViolationError(WriteError):
    """Raised when a delete is blocked by a RESTRICT foreign key."""


@dataclass(frozen=True, slots=True)
class WriteViolation:
    """A single payload problem, addressed by a JSON-pointer style path."""

    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}"


class WriteValidationError(WriteError, ValueError):
    """Raised with every violation found in a write payload."""

    def __init__(self, entity_name: str, violations: list[WriteViolation]):
        self.entity_name = entity_name
        self.violations = violations
        lines = "\n".join(f"  {violation}" for violation in violations)
        super().__init__(
            f"Writing {entity_name} failed with {len(violations)} violation(s):\n"
            f"{lines}"
        )

    def paths(self) -> list[str]:
        return [violation.path for violation in self.violations]
