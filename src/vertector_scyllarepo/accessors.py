"""
Record accessors: how the mapper reads fields from a record and builds a
new record from column values.

The mapper never inspects record types itself; it goes through a
``RecordAccessor``. ``AttributeAccessor`` covers dataclasses, pydantic
models and any class with attribute access and a keyword constructor.
For anything else, supply your own accessor.
"""

from typing import Any, Callable, Generic, Mapping, Protocol, TypeVar

T = TypeVar("T")


class RecordAccessor(Protocol[T]):
    """Reads field values from, and builds, records of one type."""

    def read(self, record: T, identifier: str) -> Any:
        """Return the value of field ``identifier`` on ``record``."""
        ...

    def build(self, values: Mapping[str, Any]) -> T:
        """Construct a new record from field values keyed by identifier."""
        ...


class AttributeAccessor(Generic[T]):
    """
    Accessor for classes with attribute access and a keyword constructor.

    Example:
        accessor = AttributeAccessor(Person)
        accessor.read(person, "age")
        accessor.build({"country": "UK", ...})
    """

    def __init__(self, record_type: type[T], factory: Callable[..., T] | None = None):
        self.record_type = record_type
        self.factory = factory or record_type

    def read(self, record: T, identifier: str) -> Any:
        return getattr(record, identifier)

    def build(self, values: Mapping[str, Any]) -> T:
        return self.factory(**values)

    def __repr__(self) -> str:
        return f"AttributeAccessor({self.record_type.__name__})"
