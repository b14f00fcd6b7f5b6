"""SQLGlot dialect and query nodes for HogQL.

Queries are built as sqlglot expression trees and rendered once by ``render``.
Custom nodes keep untrusted text out of the rendered SQL:

- ``PropertyRef``: a dotted field path such as ``properties.$host``. Each part
  is validated against an identifier pattern when the node is created.
- ``QueryParam``: a literal value. Rendering replaces it with a ``{name}``
  placeholder and moves the value into the query's ``values`` mapping, which
  the HogQL query endpoint substitutes server-side.
- ``TableRef``: a table name, validated like a field path.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Literal

from sqlglot import exp
from sqlglot.dialects.clickhouse import ClickHouse

from hogmetrics.errors import ValidationError

RowShape = Literal["array", "scalar"]

# HogQL field parts may start with $ (PostHog's reserved property prefix)
_FIELD_PART_PATTERN = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


class PropertyRef(exp.Expression):
    """A dotted HogQL field reference, rendered verbatim.

    Example:
        PropertyRef(parts=["person", "properties", "email"]) -> person.properties.email
    """

    arg_types = {"parts": True}

    @property
    def path(self) -> str:
        return ".".join(self.args["parts"])


class QueryParam(exp.Expression):
    """A literal value rendered as a ``{placeholder}``.

    ``hint`` seeds the placeholder name; ``this`` holds the final name once
    ``render`` has assigned it.
    """

    arg_types = {"this": False, "hint": True, "value": True}


class TableRef(exp.Expression):
    """A table name. Names containing dots (warehouse tables) are backtick-quoted."""

    arg_types = {"this": True}


def _table_sql(generator, expression: TableRef) -> str:
    name = expression.name
    return f"`{name}`" if "." in name else name


class HogQL(ClickHouse):
    """ClickHouse dialect extension that renders HogQL placeholders and field paths."""

    NORMALIZE_FUNCTIONS = False

    class Generator(ClickHouse.Generator):
        TRANSFORMS = {
            **ClickHouse.Generator.TRANSFORMS,
            PropertyRef: lambda self, e: e.path,
            TableRef: _table_sql,
            QueryParam: lambda self, e: "{" + e.name + "}",
            exp.Boolean: lambda self, e: "true" if e.this else "false",
        }


@dataclass(frozen=True)
class CompiledQuery:
    """A rendered HogQL query with its placeholder values.

    Attributes:
        sql: Query text containing ``{name}`` placeholders
        values: Placeholder name -> literal value
        shape: Row shape the query returns ("array" or "scalar")
    """

    sql: str
    values: dict[str, Any] = field(default_factory=dict)
    shape: RowShape = "scalar"

    def to_payload(self) -> dict[str, Any]:
        """Build the body of a HogQL query API request."""
        return {"kind": "HogQLQuery", "query": self.sql, "values": dict(self.values)}


def prop(path: str) -> PropertyRef:
    """Create a field reference from a dotted path.

    Args:
        path: Field path such as "properties.$host" or "d.created_at"

    Returns:
        PropertyRef node

    Raises:
        ValidationError: If any part of the path is not a plain identifier
    """
    parts = path.split(".") if path else []
    if not parts or not all(_FIELD_PART_PATTERN.match(part) for part in parts):
        raise ValidationError(
            f"Invalid field path: '{path}'. Parts must start with a letter, underscore or $ "
            f"and contain only letters, digits, underscores or $."
        )
    return PropertyRef(parts=parts)


def param(hint: str, value: Any) -> QueryParam:
    """Create a parameterized literal.

    Lists are stored as tuples so identical values can share one placeholder.
    """
    if isinstance(value, list):
        value = tuple(value)
    return QueryParam(hint=hint, value=value)


def func(name: str, *args: exp.Expression) -> exp.Anonymous:
    """Call a HogQL function by its exact (case-sensitive) name."""
    return exp.Anonymous(this=name, expressions=list(args))


def lambda_(params: list[str], body: exp.Expression) -> exp.Lambda:
    """Build ``x -> body`` or ``(x, y) -> body``."""
    return exp.Lambda(this=body, expressions=[exp.to_identifier(p) for p in params])


def table(name: str) -> TableRef:
    """Reference a table such as `events` or `postgres.deploys`.

    Raises:
        ValidationError: If the name is not a dotted identifier
    """
    prop(name)
    return TableRef(this=name)


def ref(name: str) -> PropertyRef:
    """Reference a column alias or lambda parameter defined in the same query."""
    return prop(name)


def num(value: int | float) -> exp.Literal:
    return exp.Literal.number(value)


def string(value: str) -> exp.Literal:
    """Inline a trusted constant string (function modes, interval units).

    Anything derived from caller input goes through ``param`` instead.
    """
    return exp.Literal.string(value)


def render(expression: exp.Expression, shape: RowShape = "scalar") -> CompiledQuery:
    """Render a query tree into HogQL text and placeholder values.

    Placeholder names come from each parameter's hint. Parameters with the same
    hint and value share a name; otherwise a numeric suffix keeps names unique.

    Args:
        expression: Query tree
        shape: Row shape the query returns

    Returns:
        CompiledQuery
    """
    tree = expression.copy()
    values: dict[str, Any] = {}
    assigned: dict[tuple[str, Any], str] = {}

    for node in tree.find_all(QueryParam, bfs=False):
        hint = node.args["hint"]
        value = node.args["value"]
        key = (hint, _hashable(value))
        name = assigned.get(key)
        if name is None:
            name = hint
            suffix = 1
            while name in values:
                name = f"{hint}_{suffix}"
                suffix += 1
            assigned[key] = name
            values[name] = list(value) if isinstance(value, tuple) else value
        node.set("this", name)

    sql = tree.sql(dialect=HogQL, normalize_functions=False)
    return CompiledQuery(sql=sql, values=values, shape=shape)


def _hashable(value: Any) -> Any:
    if isinstance(value, list):
        return tuple(value)
    return value
