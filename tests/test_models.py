"""Tests for the in-process data models."""

import pytest

from mirror.models import (
    ArchiveEntry,
    ChangeSet,
    DeleteResult,
    PartialWriteFailure,
    Summary,
    SyncResult,
)


class TestChangeSet:
    def test_overlap_rejected(self):
        with pytest.raises(ValueError, match="overlap"):
            ChangeSet(changed=frozenset({"a.md"}), removed=frozenset({"a.md"}))

    def test_is_empty(self):
        assert ChangeSet().is_empty
        assert not ChangeSet(removed=frozenset({"a.md"})).is_empty


class TestSummary:
    def test_to_dict_shape(self):
        summary = Summary(
            domains={"notes", "api"},
            topics=["Intro"],
            recent_files=["api/a.md"],
            file_count=3,
            last_updated="2026-01-02T03:04:05+00:00",
        )

        assert summary.to_dict() == {
            "domains": ["api", "notes"],
            "topics": ["Intro"],
            "recentFiles": ["api/a.md"],
            "lastUpdated": "2026-01-02T03:04:05+00:00",
            "fileCount": 3,
        }

    def test_from_dict_tolerates_missing_keys(self):
        summary = Summary.from_dict({"topics": ["A"]})

        assert summary.domains == set()
        assert summary.topics == ["A"]
        assert summary.file_count == 0
        assert summary.last_updated == ""


class TestResults:
    def test_sync_result_errors_count_failures(self):
        result = SyncResult(tenant_id="t1", mode="incremental", duration_seconds=1.23456)
        result.failures.append(PartialWriteFailure("a.md", "write", "boom"))

        assert result.errors == 1
        assert result.to_dict()["errors"] == 1
        assert result.to_dict()["duration_seconds"] == 1.23

    def test_delete_result_success(self):
        assert DeleteResult("t1").success
        assert DeleteResult("t1", records={"mirror": "ok", "sessions": "ok"}).success
        assert not DeleteResult("t1", records={"mirror": "ok", "sessions": "error: x"}).success


def test_archive_entry_text_replaces_invalid_utf8():
    assert ArchiveEntry("a.txt", b"ok\xff").text == "ok\ufffd"
