"""Tests for the table catalog."""

import pytest
from pydantic import ValidationError

from db_mirror.catalog import (
    MATERIALS_TABLE,
    USERS_TABLE,
    TableDescriptor,
    find_table,
    list_tables,
    resolve_table_name,
    to_snake_case,
)


class TestListTables:
    """The catalog is fixed, ordered and immutable."""

    def test_eighteen_tables(self) -> None:
        assert len(list_tables()) == 18

    def test_users_first(self) -> None:
        assert list_tables()[0].name == USERS_TABLE

    def test_names_unique(self) -> None:
        names = [t.name for t in list_tables()]
        assert len(names) == len(set(names))

    def test_parents_before_children(self) -> None:
        """Every table with a user foreign key comes after users."""
        names = [t.name for t in list_tables()]
        users_index = names.index(USERS_TABLE)
        for index, table in enumerate(list_tables()):
            if table.user_columns:
                assert index > users_index
        assert names.index(MATERIALS_TABLE) < names.index("material_views")
        assert names.index("tags") < names.index("material_tags")

    def test_material_stats_pk(self) -> None:
        assert find_table("material_stats").pk == "material_id"

    def test_default_pk_is_id(self) -> None:
        assert find_table("tags").pk == "id"

    def test_descriptor_is_frozen(self) -> None:
        table = find_table(MATERIALS_TABLE)
        with pytest.raises(ValidationError):
            table.name = "other"


class TestUserColumns:
    """``user_columns`` lists every users.id reference."""

    def test_single_fk(self) -> None:
        assert find_table(MATERIALS_TABLE).user_columns == ("user_id",)

    def test_extra_fk(self) -> None:
        assert find_table("material_comments").user_columns == ("user_id", "approved_by")

    def test_no_fk(self) -> None:
        assert find_table("tags").user_columns == ()

    def test_added_by(self) -> None:
        assert find_table("extra_email_addresses").user_fk == "added_by"

    def test_extra_only(self) -> None:
        table = TableDescriptor(name="audit", extra_user_fks=("reviewer_id",))
        assert table.user_columns == ("reviewer_id",)


class TestFindTable:
    def test_unknown_returns_none(self) -> None:
        assert find_table("projects") is None


class TestNameResolution:
    """Snapshot keys from older exports map onto catalog names."""

    def test_snake_case_passthrough(self) -> None:
        assert to_snake_case("user_id") == "user_id"

    def test_camel_case(self) -> None:
        assert to_snake_case("lastSeenAt") == "last_seen_at"

    def test_camel_table_key(self) -> None:
        assert resolve_table_name("htmlFiles") == "html_files"

    def test_alias(self) -> None:
        assert resolve_table_name("extraEmails") == "extra_email_addresses"

    def test_exact_name(self) -> None:
        assert resolve_table_name("material_stats") == "material_stats"

    def test_unknown_key(self) -> None:
        assert resolve_table_name("sessions") is None
