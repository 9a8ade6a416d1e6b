"""Tests for orphan detection and policy-driven cleanup."""
import os

import pytest

from filelink.store import InList
from filelink.uploads import OrphanSweeper, UploadSpec, UploadTag, remove_files_policy, resolve_reference


class PolicySpy:
    """Orphan policy recording each call and answering a fixed value."""

    def __init__(self, answer):
        self.answer = answer
        self.calls = []

    def __call__(self, rows):
        self.calls.append(rows)
        return self.answer


def sweep_spec(policy, reference=None):
    return (
        UploadSpec()
        .db("files", "id", {"file_name": UploadTag.FILE_NAME, "system_path": UploadTag.SYSTEM_PATH})
        .db_clean(policy, reference)
    )


@pytest.fixture
def linked(store):
    """Files 5, 7 and 9; only 7 is referenced, one user has no image."""
    for file_id in (5, 7, 9):
        store.insert("files", {"id": file_id, "file_name": f"{file_id}.png", "system_path": f"/srv/{file_id}.png"})
    store.insert("users", {"id": 1, "name": "ann", "image_id": 7})
    store.insert("users", {"id": 2, "name": "bob", "image_id": None})
    store.calls.clear()
    return store


class TestFindOrphans:
    def test_unreferenced_rows_found_despite_null_reference(self, linked):
        orphans = OrphanSweeper(sweep_spec(PolicySpy(False))).find_orphans(linked, "users", "image_id")

        assert sorted(row["id"] for row in orphans) == [5, 9]

    def test_orphans_carry_readable_columns(self, linked):
        orphans = OrphanSweeper(sweep_spec(PolicySpy(False))).find_orphans(linked, "users", "image_id")

        assert set(orphans[0]) == {"id", "file_name", "system_path"}

    def test_where_clauses_restrict_candidates(self, linked):
        spec = sweep_spec(PolicySpy(False)).where(lambda w: w.eq("file_name", "9.png"))
        orphans = OrphanSweeper(spec).find_orphans(linked, "users", "image_id")

        assert [row["id"] for row in orphans] == [9]

    def test_clean_reference_overrides_field(self, linked):
        linked.sql("CREATE TABLE avatars (file_id INTEGER)")
        linked.sql("INSERT INTO avatars VALUES (5)")

        spec = sweep_spec(PolicySpy(False), reference="avatars.file_id")
        orphans = OrphanSweeper(spec).find_orphans(linked, "users", "image_id")

        assert sorted(row["id"] for row in orphans) == [7, 9]

    def test_qualified_field_name(self, linked):
        orphans = OrphanSweeper(sweep_spec(PolicySpy(False))).find_orphans(linked, "ignored", "users.image_id")

        assert sorted(row["id"] for row in orphans) == [5, 9]


class TestSweep:
    def test_declining_policy_keeps_rows(self, linked):
        policy = PolicySpy(False)
        result = OrphanSweeper(sweep_spec(policy)).sweep(linked, "users", "image_id")

        assert len(policy.calls) == 1
        assert sorted(row["id"] for row in policy.calls[0]) == [5, 9]
        assert result.approved is False
        assert result.deleted == 0
        assert linked.count("files") == 3
        assert linked.writes("delete") == []

    def test_approving_policy_deletes_in_one_batch(self, linked):
        policy = PolicySpy(True)
        result = OrphanSweeper(sweep_spec(policy)).sweep(linked, "users", "image_id")

        assert result.approved is True
        assert result.deleted == 2
        [delete] = linked.writes("delete")
        [condition] = list(delete[2])
        assert isinstance(condition, InList)
        assert sorted(condition.values) == [5, 9]
        assert [row["id"] for row in linked.select("files", ["id"])] == [7]

    @pytest.mark.parametrize("answer", [1, "yes", [1], None])
    def test_only_literal_true_deletes(self, linked, answer):
        result = OrphanSweeper(sweep_spec(PolicySpy(answer))).sweep(linked, "users", "image_id")

        assert result.approved is False
        assert linked.count("files") == 3

    def test_declined_sweep_is_repeatable(self, linked):
        policy = PolicySpy(False)
        sweeper = OrphanSweeper(sweep_spec(policy))

        first = sweeper.sweep(linked, "users", "image_id")
        second = sweeper.sweep(linked, "users", "image_id")

        assert first.orphans == second.orphans
        assert len(policy.calls) == 2
        assert linked.count("files") == 3

    def test_no_orphans_skips_policy(self, linked):
        linked.delete("files", {"id": 5})
        linked.delete("files", {"id": 9})
        policy = PolicySpy(True)

        result = OrphanSweeper(sweep_spec(policy)).sweep(linked, "users", "image_id")

        assert policy.calls == []
        assert result.orphans == []

    def test_no_policy_does_nothing(self, linked):
        spec = UploadSpec().db("files", "id", {"file_name": UploadTag.FILE_NAME})
        result = OrphanSweeper(spec).sweep(linked, "users", "image_id")

        assert result.orphans == []
        assert linked.count("files") == 3


class TestRemoveFilesPolicy:
    def test_removes_files_and_approves(self, tmp_path):
        a = tmp_path / "a.png"
        b = tmp_path / "b.png"
        a.write_bytes(b"a")
        b.write_bytes(b"b")

        policy = remove_files_policy("system_path")

        assert policy([{"system_path": str(a)}, {"system_path": str(b)}]) is True
        assert not a.exists()
        assert not b.exists()

    def test_missing_file_counts_as_removed(self, tmp_path):
        policy = remove_files_policy("system_path")

        assert policy([{"system_path": str(tmp_path / "gone.png")}, {"system_path": None}]) is True

    def test_unlink_failure_declines(self, tmp_path, monkeypatch):
        def refuse(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(os, "remove", refuse)
        policy = remove_files_policy("system_path")

        assert policy([{"system_path": str(tmp_path / "a.png")}]) is False

    def test_sweep_with_remove_files_policy(self, linked, tmp_path):
        kept = tmp_path / "kept.png"
        kept.write_bytes(b"k")
        linked.update("files", {"system_path": str(kept)}, {"id": 5})

        spec = sweep_spec(remove_files_policy("system_path"))
        result = OrphanSweeper(spec).sweep(linked, "users", "image_id")

        assert result.deleted == 2
        assert not kept.exists()


class TestResolveReference:
    def test_bare_column_uses_owning_table(self):
        assert resolve_reference("users", "image_id") == ("users", "image_id")

    def test_table_and_column(self):
        assert resolve_reference("users", "avatars.file_id") == ("avatars", "file_id")

    def test_schema_qualified(self):
        assert resolve_reference("users", "main.avatars.file_id") == ("avatars", "file_id")
