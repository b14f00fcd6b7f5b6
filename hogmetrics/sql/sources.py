"""Relations metric queries read from.

A ``QuerySource`` is the single place where a metric's table or event is
chosen. Sources with joins are exposed to the compiler as a derived table so
every query reads plain column names (``created_at``, ``org_id``) regardless
of how the underlying tables are joined.
"""

from pydantic import BaseModel, ConfigDict, Field
from sqlglot import exp

from hogmetrics.core.dialect import func, prop, table


class JoinedTable(BaseModel):
    """An inner join onto the source's base table."""

    model_config = ConfigDict(frozen=True)

    table: str = Field(..., description="Table name, e.g. postgres.projects")
    alias: str = Field(..., description="Alias used by column paths, e.g. p")
    left_key: str = Field(..., description="Join key on the base table, e.g. d.project_id")
    right_key: str = Field(..., description="Join key on this table, e.g. p.project_id")


class QuerySource(BaseModel):
    """Where a metric's rows come from.

    Example:
        QuerySource(table="events", event="moose_cli_command")
    """

    model_config = ConfigDict(frozen=True)

    table: str = Field(default="events", description="Base table")
    alias: str = Field(default="e", description="Alias of the relation in the outer query")
    base_alias: str | None = Field(default=None, description="Alias of the base table inside a joined relation")
    event: str | None = Field(default=None, description="Event name matched with equals(event, ...)")
    timestamp_field: str = Field(default="timestamp", description="Field bucketed and range-filtered")
    person_field: str = Field(default="person_id", description="Field identifying a person")
    joins: list[JoinedTable] = Field(default_factory=list)
    columns: dict[str, str] = Field(
        default_factory=dict, description="Output column -> field path, for joined relations"
    )
    apply_traffic_filters: bool = Field(
        default=True, description="Apply the internal traffic exclusions (event tables only)"
    )

    def relation(self) -> exp.Expression:
        """FROM-clause expression for this source."""
        if not self.joins:
            return exp.alias_(table(self.table), self.alias)

        inner = exp.select(*[exp.alias_(prop(path), name) for name, path in self.columns.items()]).from_(
            exp.alias_(table(self.table), self.base_alias or self.alias)
        )
        for joined in self.joins:
            inner = inner.join(
                exp.Join(
                    this=exp.alias_(table(joined.table), joined.alias),
                    on=func("equals", prop(joined.left_key), prop(joined.right_key)),
                )
            )
        return inner.subquery(self.alias)


def events_source(event: str | None = None) -> QuerySource:
    return QuerySource(table="events", event=event)


PROJECTS_SOURCE = QuerySource(
    table="postgres.projects",
    timestamp_field="created_at",
    apply_traffic_filters=False,
)

DEPLOYMENTS_SOURCE = QuerySource(
    table="postgres.deploys",
    base_alias="d",
    timestamp_field="created_at",
    apply_traffic_filters=False,
    joins=[
        JoinedTable(table="postgres.projects", alias="p", left_key="d.project_id", right_key="p.project_id"),
    ],
    columns={
        "deploy_id": "d.deploy_id",
        "url": "d.url",
        "status": "d.status",
        "created_at": "d.created_at",
        "project_name": "p.name",
        "repo_url": "p.repo_url",
        "org_id": "p.org_id",
    },
)
