"""
Render statement descriptions as CQL.

Values are always bound as ``%s`` parameters, never interpolated.
"""

import re
from typing import Any

from vertector_scyllarepo.exceptions import ConfigurationError
from vertector_scyllarepo.statements import PointDelete, SelectAll, SelectByPartition, Statement, Upsert

# Unquoted CQL identifiers are folded to lower case
_PLAIN_IDENTIFIER = re.compile(r"^[a-z][a-z0-9_]*$")
_VALID_IDENTIFIER = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*$")

# Reserved words that cannot be used as unquoted identifiers
CQL_KEYWORDS = frozenset({
    'add', 'allow', 'alter', 'and', 'apply', 'asc', 'authorize', 'batch',
    'begin', 'by', 'columnfamily', 'create', 'delete', 'desc', 'describe',
    'drop', 'entries', 'execute', 'from', 'full', 'grant', 'if', 'in',
    'index', 'infinity', 'insert', 'into', 'is', 'keyspace', 'limit',
    'materialized', 'mbean', 'mbeans', 'modify', 'nan', 'norecursive', 'not',
    'null', 'of', 'on', 'or', 'order', 'primary', 'rename', 'replace',
    'revoke', 'schema', 'select', 'set', 'table', 'to', 'token', 'truncate',
    'type', 'unlogged', 'update', 'use', 'using', 'values', 'view', 'where',
    'with',
})


def validate_identifier(name: str, kind: str = "identifier") -> str:
    """
    Validate a keyspace or table name to prevent CQL injection.

    Mixed-case names are accepted but rendered quoted, so they only match
    tables created with the same quoted name. A table created unquoted as
    ``People`` is stored as ``people`` and must be named that way here.

    Raises:
        ConfigurationError: If the name is not a usable CQL identifier
    """
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"{kind.capitalize()} name cannot be empty")

    # CQL identifier rules: alphanumeric and underscore only, must start with letter
    if not _VALID_IDENTIFIER.match(name):
        raise ConfigurationError(
            f"{kind.capitalize()} name '{name}' must start with a letter and contain only "
            "alphanumeric characters and underscores"
        )

    # CQL limit is 48 characters for identifiers
    if len(name) > 48:
        raise ConfigurationError(
            f"{kind.capitalize()} name exceeds maximum length (48 characters): {len(name)}"
        )

    if name.lower() in CQL_KEYWORDS:
        raise ConfigurationError(f"{kind.capitalize()} name '{name}' is a reserved CQL keyword")

    return name


def quote(identifier: str) -> str:
    """
    Double-quote an identifier unless it is a plain lower-case non-keyword.

    Quoting keeps case: ``quote("People")`` names a different table than
    an unquoted ``People``.
    """
    if _PLAIN_IDENTIFIER.match(identifier) and identifier not in CQL_KEYWORDS:
        return identifier
    return '"' + identifier.replace('"', '""') + '"'


def _table(table: str, keyspace: str | None) -> str:
    if keyspace:
        return f"{quote(keyspace)}.{quote(table)}"
    return quote(table)


def _where(predicates) -> str:
    return " AND ".join(f"{quote(column)} = %s" for column, _ in predicates)


def render(statement: Statement, keyspace: str | None = None) -> tuple[str, tuple[Any, ...]]:
    """
    Render a statement description as a CQL query and its parameters.

    Args:
        statement: Statement description from ``QueryBuilder``
        keyspace: Keyspace to qualify the table with when the statement
                  carries none of its own

    Returns:
        Tuple of (query, parameters)

    Example:
        render(SelectByPartition("person", ("country", "age"), (("country", "UK"),)))
        # ('SELECT country, age FROM person WHERE country = %s', ('UK',))
    """
    if not isinstance(statement, (SelectAll, SelectByPartition, Upsert, PointDelete)):
        raise TypeError(f"Cannot render {type(statement).__name__}")

    table = _table(statement.table, statement.keyspace or keyspace)

    if isinstance(statement, SelectByPartition):
        columns = ", ".join(quote(c) for c in statement.columns)
        query = f"SELECT {columns} FROM {table} WHERE {_where(statement.predicates)}"
        if statement.limit is not None:
            query += f" LIMIT {int(statement.limit)}"
        return query, tuple(value for _, value in statement.predicates)

    if isinstance(statement, SelectAll):
        columns = ", ".join(quote(c) for c in statement.columns)
        query = f"SELECT {columns} FROM {table}"
        if statement.limit is not None:
            query += f" LIMIT {int(statement.limit)}"
        return query, ()

    if isinstance(statement, Upsert):
        columns = ", ".join(quote(column) for column, _ in statement.values)
        placeholders = ", ".join("%s" for _ in statement.values)
        query = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        return query, tuple(value for _, value in statement.values)

    query = f"DELETE FROM {table} WHERE {_where(statement.key)}"
    return query, tuple(value for _, value in statement.key)
