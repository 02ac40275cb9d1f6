"""
Naming convention translation between record field identifiers and
column names.

A convention is described by the case of its first segment and the
separator placed between segments. Conventions without a separator mark
segment boundaries with a capital letter, so every segment after the first
is capitalized (``firstName``, ``FirstName``). Conventions with a separator
apply the first segment's case to every segment (``first_name``,
``FIRST_NAME``).
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from vertector_scyllarepo.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Splits an unseparated identifier at each capital letter
_CAPITAL_BOUNDARY = re.compile(r"[A-Z]?[^A-Z]*")


class SegmentCase(str, Enum):
    """Letter case applied to an identifier segment."""
    LOWER = "lower"
    UPPER = "upper"
    CAPITALIZED = "capitalized"

    def apply(self, segment: str) -> str:
        if self is SegmentCase.LOWER:
            return segment.lower()
        if self is SegmentCase.UPPER:
            return segment.upper()
        return segment[:1].upper() + segment[1:].lower()


@dataclass(frozen=True)
class NamingConvention:
    """A casing convention for identifiers."""

    name: str
    first_segment_case: SegmentCase
    separator: str = ""

    def validate(self) -> None:
        """
        Check that identifiers written in this convention can be split back
        into segments.

        Raises:
            ConfigurationError: If the convention is not supported
        """
        if self.separator:
            if len(self.separator) != 1 or self.separator.isalnum():
                raise ConfigurationError(
                    f"Naming convention '{self.name}' has an unsupported separator "
                    f"{self.separator!r}; use a single non-alphanumeric character"
                )
        elif self.first_segment_case is SegmentCase.UPPER:
            raise ConfigurationError(
                f"Naming convention '{self.name}' is all upper case without a separator; "
                "segment boundaries cannot be recovered"
            )

    def split(self, identifier: str) -> list[str]:
        """Split an identifier written in this convention into lower-case segments."""
        if self.separator:
            parts = identifier.split(self.separator)
        else:
            parts = _CAPITAL_BOUNDARY.findall(identifier)
        return [part.lower() for part in parts if part]

    def join(self, segments: list[str]) -> str:
        """Join lower-case segments into an identifier in this convention."""
        if not segments:
            return ""
        if self.separator:
            return self.separator.join(self.first_segment_case.apply(s) for s in segments)
        head = self.first_segment_case.apply(segments[0])
        return head + "".join(SegmentCase.CAPITALIZED.apply(s) for s in segments[1:])


CAMEL_CASE = NamingConvention("camel_case", SegmentCase.LOWER)
PASCAL_CASE = NamingConvention("pascal_case", SegmentCase.CAPITALIZED)
SNAKE_CASE = NamingConvention("snake_case", SegmentCase.LOWER, "_")
SCREAMING_SNAKE_CASE = NamingConvention("screaming_snake_case", SegmentCase.UPPER, "_")
KEBAB_CASE = NamingConvention("kebab_case", SegmentCase.LOWER, "-")

CONVENTIONS: dict[str, NamingConvention] = {
    convention.name: convention
    for convention in (CAMEL_CASE, PASCAL_CASE, SNAKE_CASE, SCREAMING_SNAKE_CASE, KEBAB_CASE)
}


def get_convention(name: str) -> NamingConvention:
    """
    Look up a built-in naming convention by name.

    Raises:
        ConfigurationError: If no convention has that name
    """
    try:
        return CONVENTIONS[name.lower()]
    except KeyError:
        raise ConfigurationError(
            f"Unknown naming convention '{name}'. Expected one of: {', '.join(sorted(CONVENTIONS))}"
        ) from None


def to_column_name(identifier: str, source: NamingConvention, target: NamingConvention) -> str:
    """
    Translate an identifier from one naming convention to another.

    The translation is deterministic, and for identifiers built from
    alphanumeric segments that each start with a letter it is invertible:
    ``to_column_name(to_column_name(x, a, b), b, a) == x``.

    Segments starting with a digit are not round-trip safe. Conventions
    that mark segment boundaries by case cannot mark a digit, so the digit
    merges into the previous segment: ``line_2`` becomes ``line2`` in
    camel case, and ``line2`` translates back to ``line2``, not ``line_2``.
    Use a column override for such fields.

    Args:
        identifier: Identifier written in the source convention
        source: Convention the identifier is written in
        target: Convention to translate to

    Returns:
        The translated identifier

    Raises:
        ConfigurationError: If either convention is unsupported
    """
    source.validate()
    target.validate()

    if source == target:
        return identifier

    return target.join(source.split(identifier))


@dataclass(frozen=True)
class NamingStrategy:
    """
    A validated pairing of field and column naming conventions.

    Passed explicitly into descriptor construction so that every record type
    states how its fields become columns.

    Example:
        strategy = NamingStrategy(CAMEL_CASE, SNAKE_CASE)
        strategy.column_name("firstName")  # "first_name"
        strategy.field_name("first_name")  # "firstName"
    """

    field_convention: NamingConvention = SNAKE_CASE
    column_convention: NamingConvention = SNAKE_CASE

    def __post_init__(self):
        self.field_convention.validate()
        self.column_convention.validate()

    @classmethod
    def default(cls) -> "NamingStrategy":
        return cls(SNAKE_CASE, SNAKE_CASE)

    @classmethod
    def from_names(cls, field_convention: str, column_convention: str) -> "NamingStrategy":
        """Build a strategy from convention names (e.g. ``"camel_case"``)."""
        return cls(get_convention(field_convention), get_convention(column_convention))

    def column_name(self, identifier: str) -> str:
        return to_column_name(identifier, self.field_convention, self.column_convention)

    def field_name(self, column_name: str) -> str:
        return to_column_name(column_name, self.column_convention, self.field_convention)
