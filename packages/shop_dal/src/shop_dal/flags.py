"""
Behaviour flags attached to field declarations.

A flag is identified by its class; :meth:`Field.add_flags` keeps at most one
instance per class.

Example:
    >>> IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware())
"""

from __future__ import annotations

HIGH_SEARCH_RANKING = 500
MIDDLE_SEARCH_RANKING = 250
LOW_SEARCH_RANKING = 80


class Flag:
    """Base class for field flags."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def __repr__(self) -> str:
        return f"{self.name}()"

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash(type(self))


class PrimaryKey(Flag):
    """Column is part of the primary key."""


class Required(Flag):
    """Value must be provided when a row is created and must never be null."""


class CascadeDelete(Flag):
    """Rows on the other side of the association are deleted with this row."""


class RestrictDelete(Flag):
    """This row cannot be deleted while the association has rows."""


class SetNullOnDelete(Flag):
    """The foreign key on the other side is set to null when this row goes."""


class Inherited(Flag):
    """Empty values are taken from the parent entity."""


class ReverseInherited(Flag):
    """
    Association whose counterpart on the target definition is inherited.

    Reading the association also returns target children that inherit the
    counterpart from a matching parent.
    """

    def __init__(self, property_name: str):
        self.property_name = property_name

    def __repr__(self) -> str:
        return f"ReverseInherited({self.property_name!r})"


class ApiAware(Flag):
    """Field is exposed through generated API schemas."""


class SearchRanking(Flag):
    """Weight added to a search score when the field matches the term."""

    def __init__(self, weight: float):
        self.weight = weight

    def __repr__(self) -> str:
        return f"SearchRanking({self.weight!r})"
