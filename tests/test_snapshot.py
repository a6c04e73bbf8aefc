"""Tests for snapshot export and atomic restore."""

import json

import pytest

from db_mirror.backup.snapshot import (
    RestoreError,
    export_snapshot,
    export_to_file,
    normalize_snapshot,
    restore_from_file,
    restore_snapshot,
)
from db_mirror.backup.store import list_backups
from db_mirror.catalog import find_table


def _seeded(make_db, **kwargs):
    return make_db(
        rows={
            "users": [{"id": 1, "email": "a@x"}],
            "html_files": [{"id": 10, "user_id": 1, "title": "Atoms"}],
            "tags": [{"id": 3, "name": "chemistry"}],
        },
        **kwargs,
    )


class TestExportSnapshot:
    """Export reads every table and omits empty ones."""

    @pytest.mark.asyncio
    async def test_keys_are_non_empty_tables(self, make_db) -> None:
        snapshot = await export_snapshot(_seeded(make_db))

        assert list(snapshot) == ["users", "html_files", "tags"]
        assert snapshot["html_files"] == [{"id": 10, "user_id": 1, "title": "Atoms"}]

    @pytest.mark.asyncio
    async def test_unreadable_table_omitted(self, make_db) -> None:
        db = _seeded(make_db, missing=("backups",))
        db.failing_reads.add("tags")

        snapshot = await export_snapshot(db)

        assert "tags" not in snapshot
        assert "users" in snapshot

    @pytest.mark.asyncio
    async def test_read_only(self, make_db) -> None:
        db = _seeded(make_db)

        await export_snapshot(db)

        assert db.writes == []


class TestRestoreSnapshot:
    """Restore replaces contents in one transaction."""

    @pytest.mark.asyncio
    async def test_round_trip(self, make_db) -> None:
        source = _seeded(make_db)
        destination = make_db(rows={"tags": [{"id": 99, "name": "stale"}]})

        snapshot = await export_snapshot(source)
        report = await restore_snapshot(snapshot, destination)

        assert await export_snapshot(destination) == snapshot
        assert report.restored["users"] == 1
        assert report.deleted["tags"] == 1
        assert report.total_restored == 3

    @pytest.mark.asyncio
    async def test_deletes_children_before_parents(self, make_db, user_foreign_keys) -> None:
        destination = _seeded(make_db, foreign_keys=user_foreign_keys)
        snapshot = {"users": [{"id": 2, "email": "b@x"}], "html_files": [{"id": 11, "user_id": 2}]}

        await restore_snapshot(snapshot, destination)

        assert destination.rows("users") == [{"id": 2, "email": "b@x"}]
        assert destination.rows("html_files") == [{"id": 11, "user_id": 2}]

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, make_db) -> None:
        destination = _seeded(make_db)
        before = {k: [dict(r) for r in v] for k, v in destination.tables.items()}
        destination.failing_inserts.add("tags")
        snapshot = {
            "users": [{"id": 5, "email": "e@x"}],
            "tags": [{"id": 1, "name": "x"}],
        }

        with pytest.raises(RestoreError) as exc_info:
            await restore_snapshot(snapshot, destination)

        assert exc_info.value.table == "tags"
        assert destination.tables == before

    @pytest.mark.asyncio
    async def test_missing_table_key_empties_table(self, make_db) -> None:
        destination = _seeded(make_db)

        report = await restore_snapshot({"users": [{"id": 1, "email": "a@x"}]}, destination)

        assert destination.rows("tags") == []
        assert report.restored["tags"] == 0

    @pytest.mark.asyncio
    async def test_invalidates_materials_cache(self, make_db, materials_cache) -> None:
        materials_cache.set([{"id": "stale"}])

        await restore_snapshot({}, make_db(), cache=materials_cache)

        assert materials_cache.get() is None

    @pytest.mark.asyncio
    async def test_failed_restore_keeps_cache(self, make_db, materials_cache) -> None:
        destination = make_db()
        destination.failing_inserts.add("users")
        materials_cache.set([{"id": "kept"}])

        with pytest.raises(RestoreError):
            await restore_snapshot({"users": [{"id": 1}]}, destination, cache=materials_cache)

        assert materials_cache.get() == [{"id": "kept"}]

    @pytest.mark.asyncio
    async def test_table_subset_leaves_others(self, make_db) -> None:
        destination = _seeded(make_db)

        await restore_snapshot({"tags": []}, destination, tables=[find_table("tags")])

        assert destination.rows("tags") == []
        assert destination.rows("users") == [{"id": 1, "email": "a@x"}]


class TestNormalizeSnapshot:
    """Older document shapes are accepted."""

    def test_camel_case_keys(self) -> None:
        snapshot, ignored = normalize_snapshot(
            {"htmlFiles": [{"id": 1, "userId": 2, "createdAt": "2024-01-01"}]}
        )

        assert snapshot == {"html_files": [{"id": 1, "user_id": 2, "created_at": "2024-01-01"}]}
        assert ignored == []

    def test_alias_key(self) -> None:
        snapshot, _ = normalize_snapshot({"extraEmails": [{"id": 1, "addedBy": 3}]})

        assert snapshot == {"extra_email_addresses": [{"id": 1, "added_by": 3}]}

    def test_unknown_keys_reported(self) -> None:
        snapshot, ignored = normalize_snapshot({"sessions": [], "tags": [{"id": 1}]})

        assert ignored == ["sessions"]
        assert snapshot == {"tags": [{"id": 1}]}

    def test_metadata_not_reported(self) -> None:
        _, ignored = normalize_snapshot({"metadata": {"reason": "manual"}, "tags": []})

        assert ignored == []

    def test_data_envelope_unwrapped(self) -> None:
        document = {
            "timestamp": "2024-01-01T00:00:00Z",
            "reason": "scheduled",
            "version": "1.0",
            "data": {"users": [{"id": 1}], "htmlFiles": []},
            "stats": {"users": 1},
        }

        snapshot, ignored = normalize_snapshot(document)

        assert snapshot == {"users": [{"id": 1}], "html_files": []}
        assert ignored == []

    def test_rows_must_be_list(self) -> None:
        with pytest.raises(RestoreError, match="tags"):
            normalize_snapshot({"tags": {"id": 1}})

    @pytest.mark.asyncio
    async def test_ignored_keys_in_report(self, make_db) -> None:
        destination = make_db()

        report = await restore_snapshot(
            {"users": [{"id": 1, "email": "a@x"}], "unknown": []}, destination
        )

        assert report.ignored_keys == ("unknown",)
        assert destination.rows("users") == [{"id": 1, "email": "a@x"}]


class TestFiles:
    """Snapshots written to and restored from disk."""

    @pytest.mark.asyncio
    async def test_export_to_file_adds_metadata(self, make_db, tmp_path) -> None:
        path = tmp_path / "out" / "snapshot.json"

        await export_to_file(_seeded(make_db), path, reason="before-migration")

        with open(path) as f:
            data = json.load(f)
        assert data["metadata"]["reason"] == "before-migration"
        assert data["metadata"]["counts"] == {"users": 1, "html_files": 1, "tags": 1}
        assert data["tags"] == [{"id": 3, "name": "chemistry"}]

    @pytest.mark.asyncio
    async def test_file_round_trip(self, make_db, tmp_path) -> None:
        source = _seeded(make_db)
        destination = make_db()
        path = tmp_path / "snapshot.json"

        await export_to_file(source, path)
        await restore_from_file(destination, path)

        assert await export_snapshot(destination) == await export_snapshot(source)

    @pytest.mark.asyncio
    async def test_pre_restore_backup_written(self, make_db, tmp_path) -> None:
        destination = make_db(rows={"tags": [{"id": 1, "name": "current"}]})
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps({"tags": [{"id": 2, "name": "restored"}]}))
        backup_dir = tmp_path / "backups"

        await restore_from_file(destination, path, backup_dir=backup_dir)

        backups = list_backups(backup_dir)
        assert len(backups) == 1
        assert backups[0].filename.endswith("_pre-restore.json")
        saved = json.loads((backup_dir / backups[0].filename).read_text())
        assert saved["tags"] == [{"id": 1, "name": "current"}]
        assert destination.rows("tags") == [{"id": 2, "name": "restored"}]

    @pytest.mark.asyncio
    async def test_missing_file(self, make_db, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            await restore_from_file(make_db(), tmp_path / "nope.json")
