"""Table catalog: the dependency-ordered list of tables to copy.

The order is the single source of truth for every copy operation.  Parents
come before children, so inserts walk the list forwards and deletes walk it
backwards.  Nothing checks the order at runtime; keep it topological when
adding tables.

Usage:
    from db_mirror.catalog import list_tables, find_table

    for table in list_tables():
        print(table.name, table.pk, table.user_fk)
"""

import re

from pydantic import BaseModel, ConfigDict


class TableDescriptor(BaseModel):
    """One table in the catalog."""

    model_config = ConfigDict(frozen=True)

    name: str                                   # table name
    pk: str = "id"                              # primary key column
    user_fk: str | None = None                  # column referencing users.id
    extra_user_fks: tuple[str, ...] = ()        # further users.id references

    @property
    def user_columns(self) -> tuple[str, ...]:
        """Every column that must be rewritten when user ids are remapped."""
        if self.user_fk is None:
            return self.extra_user_fks
        return (self.user_fk, *self.extra_user_fks)


USERS_TABLE = "users"
MATERIALS_TABLE = "html_files"

_TABLES: tuple[TableDescriptor, ...] = (
    TableDescriptor(name=USERS_TABLE),
    TableDescriptor(name="system_prompts"),
    TableDescriptor(name=MATERIALS_TABLE, user_fk="user_id"),
    TableDescriptor(name="email_subscriptions", user_fk="user_id"),
    TableDescriptor(name="extra_email_addresses", user_fk="added_by"),
    TableDescriptor(name="email_logs"),
    TableDescriptor(name="ai_generation_requests", user_fk="user_id"),
    TableDescriptor(name="push_subscriptions", user_fk="user_id"),
    TableDescriptor(name="backups", user_fk="created_by"),
    TableDescriptor(name="material_views", user_fk="user_id"),
    TableDescriptor(name="tags"),
    TableDescriptor(name="material_tags"),
    TableDescriptor(name="material_stats", pk="material_id"),
    TableDescriptor(name="material_likes", user_fk="user_id"),
    TableDescriptor(name="material_ratings", user_fk="user_id"),
    TableDescriptor(name="scheduled_jobs", user_fk="created_by"),
    TableDescriptor(
        name="material_comments",
        user_fk="user_id",
        extra_user_fks=("approved_by",),
    ),
    TableDescriptor(name="weekly_email_reports"),
)

# Snapshot keys written by older exports that do not follow the table name
_TABLE_ALIASES: dict[str, str] = {
    "extra_emails": "extra_email_addresses",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")


def list_tables() -> tuple[TableDescriptor, ...]:
    """Return the catalog in dependency order (parents first)."""
    return _TABLES


def find_table(name: str) -> TableDescriptor | None:
    """Find a catalog entry by exact table name."""
    for table in _TABLES:
        if table.name == name:
            return table
    return None


def to_snake_case(name: str) -> str:
    """``lastSeenAt`` -> ``last_seen_at``; snake_case input is returned as-is."""
    return _CAMEL_BOUNDARY.sub(r"_\1", name).lower()


def resolve_table_name(key: str) -> str | None:
    """Map a snapshot key (``htmlFiles``, ``html_files``, ``extraEmails``) to a table name.

    Returns ``None`` for keys that name no catalog table.
    """
    name = to_snake_case(key)
    name = _TABLE_ALIASES.get(name, name)
    return name if find_table(name) is not None else None
