"""
Vertector ScyllaDB Repository - typed async repositories over ScyllaDB.

This package maps record types (dataclasses, pydantic models or any class
with an accessor) onto partitioned, clustered ScyllaDB tables and exposes
generic async CRUD operations keyed by composite primary keys.
"""

from vertector_scyllarepo.exceptions import (
    RepositoryError,
    ConfigurationError,
    SchemaError,
    ValidationError,
    DecodingError,
    StoreError,
    StoreConnectionError,
    StoreQueryError,
    StoreTimeoutError,
    StoreUnavailableError,
    StoreAuthenticationError,
)

from vertector_scyllarepo.naming import (
    NamingConvention,
    NamingStrategy,
    SegmentCase,
    CAMEL_CASE,
    PASCAL_CASE,
    SNAKE_CASE,
    SCREAMING_SNAKE_CASE,
    KEBAB_CASE,
    get_convention,
    to_column_name,
)

from vertector_scyllarepo.schema import (
    FieldRole,
    FieldMetadata,
    RecordTypeMetadata,
    FieldSpec,
    KeySchemaDescriptor,
    describe,
    metadata_for,
    fields_of,
)

from vertector_scyllarepo.accessors import (
    RecordAccessor,
    AttributeAccessor,
)

from vertector_scyllarepo.mapper import EntityMapper

from vertector_scyllarepo.statements import (
    QueryBuilder,
    SelectAll,
    SelectByPartition,
    Upsert,
    PointDelete,
    Statement,
)

from vertector_scyllarepo.executor import (
    StatementExecutor,
    ScyllaDBExecutor,
    load_setup_script,
    split_setup_script,
)

from vertector_scyllarepo.repository import AsyncRepository

from vertector_scyllarepo.config import (
    ScyllaDBRepositoryConfig,
    AuthConfig,
    PoolConfig,
    MetricsConfig,
    NamingConfig,
    load_config_from_env,
)

from vertector_scyllarepo.observability import (
    Tracer,
    EnhancedMetrics,
)

from vertector_scyllarepo.logging_utils import (
    StructuredFormatter,
    PerformanceLogger,
)

__version__ = "1.0.0"

__all__ = [
    # Repository
    "AsyncRepository",
    "EntityMapper",
    "RecordAccessor",
    "AttributeAccessor",
    # Key schema
    "FieldRole",
    "FieldMetadata",
    "RecordTypeMetadata",
    "FieldSpec",
    "KeySchemaDescriptor",
    "describe",
    "metadata_for",
    "fields_of",
    # Naming
    "NamingConvention",
    "NamingStrategy",
    "SegmentCase",
    "CAMEL_CASE",
    "PASCAL_CASE",
    "SNAKE_CASE",
    "SCREAMING_SNAKE_CASE",
    "KEBAB_CASE",
    "get_convention",
    "to_column_name",
    # Statements
    "QueryBuilder",
    "SelectAll",
    "SelectByPartition",
    "Upsert",
    "PointDelete",
    "Statement",
    # Execution
    "StatementExecutor",
    "ScyllaDBExecutor",
    "load_setup_script",
    "split_setup_script",
    # Errors
    "RepositoryError",
    "ConfigurationError",
    "SchemaError",
    "ValidationError",
    "DecodingError",
    "StoreError",
    "StoreConnectionError",
    "StoreQueryError",
    "StoreTimeoutError",
    "StoreUnavailableError",
    "StoreAuthenticationError",
    # Configuration
    "ScyllaDBRepositoryConfig",
    "AuthConfig",
    "PoolConfig",
    "MetricsConfig",
    "NamingConfig",
    "load_config_from_env",
    # Observability
    "Tracer",
    "EnhancedMetrics",
    "StructuredFormatter",
    "PerformanceLogger",
]
