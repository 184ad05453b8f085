"""Unit tests for the sync job models: JobConfig and JobRecord."""

from __future__ import annotations

from datetime import datetime, timezone

import pydantic
import pytest

from rca_dashboard.models.job import (
    JobConfig,
    JobRecord,
    JobStatus,
    SyncType,
    split_filter_text,
)
from rca_dashboard.utils.errors import ValidationError


# ======================================================================
# Filter text / JobConfig
# ======================================================================


class TestSplitFilterText:
    def test_trims_and_drops_empty_entries(self) -> None:
        assert split_filter_text(" ENG, OPS ,,") == ("ENG", "OPS")

    def test_empty_and_none_mean_unscoped(self) -> None:
        assert split_filter_text("") == ()
        assert split_filter_text(None) == ()
        assert split_filter_text(" , ,") == ()


class TestJobConfig:
    def test_from_text_parses_form_inputs(self) -> None:
        config = JobConfig.from_text("INCREMENTAL", "ENG, OPS", "rca,post-mortem")
        assert config.sync_type is SyncType.INCREMENTAL
        assert config.spaces == ("ENG", "OPS")
        assert config.tags == ("rca", "post-mortem")
        assert config.limit is None

    def test_from_text_accepts_lowercase_type(self) -> None:
        assert JobConfig.from_text(" full ").sync_type is SyncType.FULL

    def test_from_text_accepts_enum(self) -> None:
        assert JobConfig.from_text(SyncType.FULL).sync_type is SyncType.FULL

    def test_unknown_type_raises_validation_error(self) -> None:
        with pytest.raises(ValidationError, match="Unknown sync type"):
            JobConfig.from_text("PARTIAL")

    def test_non_positive_limit_rejected(self) -> None:
        with pytest.raises(ValidationError, match="limit"):
            JobConfig.from_text("FULL", limit=0)

    def test_payload_omits_missing_limit(self) -> None:
        config = JobConfig.from_text("FULL", "ENG", "")
        assert config.to_payload() == {"syncType": "FULL", "spaces": ["ENG"], "tags": []}

    def test_payload_includes_limit(self) -> None:
        config = JobConfig.from_text("INCREMENTAL", limit=25)
        assert config.to_payload()["limit"] == 25

    def test_config_is_frozen(self) -> None:
        config = JobConfig()
        with pytest.raises(pydantic.ValidationError):
            config.sync_type = SyncType.FULL  # type: ignore[misc]


# ======================================================================
# JobRecord parsing
# ======================================================================


class TestJobRecordParsing:
    def test_parses_backend_wire_format(self) -> None:
        record = JobRecord.model_validate(
            {
                "syncId": "abc123",
                "status": "RUNNING",
                "message": "Fetching pages",
                "pagesFetched": 10,
                "pagesProcessed": 4,
                "pagesFailed": 1,
                "startedAt": "2024-05-01T10:00:00Z",
                "completedAt": None,
            }
        )
        assert record.job_id == "abc123"
        assert record.status is JobStatus.RUNNING
        assert (record.discovered, record.processed, record.failed) == (10, 4, 1)
        assert record.started_at == datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc)  # noqa: UP017
        assert record.completed_at is None

    def test_null_counts_and_message_default(self) -> None:
        record = JobRecord.model_validate(
            {"syncId": "x", "status": "RUNNING", "message": None, "pagesFetched": None}
        )
        assert record.message == ""
        assert record.discovered == 0

    def test_empty_id_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            JobRecord.model_validate({"syncId": "", "status": "RUNNING"})

    def test_negative_counts_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            JobRecord.model_validate({"syncId": "x", "pagesProcessed": -1})

    def test_unknown_status_rejected(self) -> None:
        with pytest.raises(pydantic.ValidationError):
            JobRecord.model_validate({"syncId": "x", "status": "PAUSED"})

    def test_terminal_record_without_completion_time_is_stamped(self) -> None:
        before = datetime.now(tz=timezone.utc)  # noqa: UP017
        record = JobRecord.model_validate({"syncId": "x", "status": "COMPLETED"})
        assert record.completed_at is not None
        assert record.completed_at >= before

    def test_backend_completion_time_is_kept(self) -> None:
        record = JobRecord.model_validate(
            {"syncId": "x", "status": "FAILED", "completedAt": "2024-05-01T11:00:00Z"}
        )
        assert record.completed_at == datetime(2024, 5, 1, 11, 0, tzinfo=timezone.utc)  # noqa: UP017

    def test_running_record_never_has_completion_time(self) -> None:
        record = JobRecord.model_validate(
            {"syncId": "x", "status": "RUNNING", "completedAt": "2024-05-01T11:00:00Z"}
        )
        assert record.completed_at is None

    def test_to_wire_uses_camel_case(self, make_record) -> None:
        wire = make_record(discovered=10, processed=4).to_wire()
        assert wire["syncId"] == "abc123"
        assert wire["pagesFetched"] == 10
        assert wire["pagesProcessed"] == 4
        assert wire["completedAt"] is None


# ======================================================================
# Progress
# ======================================================================


class TestProgressPercent:
    def test_zero_when_nothing_discovered(self, make_record) -> None:
        assert make_record(discovered=0, processed=0).progress_percent == 0

    def test_forty_percent(self, make_record) -> None:
        assert make_record(discovered=10, processed=4).progress_percent == 40

    @pytest.mark.parametrize(
        ("discovered", "processed", "expected"),
        [(3, 1, 33), (3, 2, 67), (200, 1, 0), (1, 1, 100)],
    )
    def test_rounds_to_whole_percent(self, make_record, discovered, processed, expected) -> None:
        record = make_record(discovered=discovered, processed=processed)
        assert record.progress_percent == expected

    def test_clamped_when_processed_exceeds_discovered(self, make_record) -> None:
        assert make_record(discovered=5, processed=9).progress_percent == 100


# ======================================================================
# Merging
# ======================================================================


class TestMergedWith:
    def test_newer_snapshot_replaces_status_and_message(self, make_record) -> None:
        current = make_record(discovered=10, processed=4)
        newer = make_record(discovered=10, processed=6, message="Embedding")
        merged = current.merged_with(newer)
        assert merged.processed == 6
        assert merged.message == "Embedding"

    def test_counts_never_move_backwards(self, make_record) -> None:
        current = make_record(discovered=10, processed=4, failed=1)
        stale = make_record(discovered=8, processed=2, failed=0)
        merged = current.merged_with(stale)
        assert (merged.discovered, merged.processed, merged.failed) == (10, 4, 1)

    def test_started_at_is_immutable(self, make_record) -> None:
        current = make_record()
        newer = make_record(startedAt="2030-01-01T00:00:00Z")
        assert current.merged_with(newer).started_at == current.started_at

    def test_started_at_filled_when_first_known(self, make_record) -> None:
        current = JobRecord.model_validate({"syncId": "abc123"})
        newer = make_record()
        assert current.merged_with(newer).started_at == newer.started_at

    def test_with_start_time_fills_only_missing_value(self, make_record) -> None:
        now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)  # noqa: UP017
        bare = JobRecord.model_validate({"syncId": "abc123"})
        assert bare.with_start_time(now).started_at == now

        known = make_record()
        assert known.with_start_time(now) is known

    def test_terminal_record_is_final(self, make_record) -> None:
        done = make_record(status=JobStatus.COMPLETED, discovered=10, processed=10)
        late = make_record(status=JobStatus.RUNNING, discovered=12, processed=11)
        assert done.merged_with(late) is done

    def test_transition_to_terminal(self, make_record) -> None:
        current = make_record(discovered=10, processed=9)
        final = make_record(status=JobStatus.COMPLETED, discovered=10, processed=10)
        merged = current.merged_with(final)
        assert merged.is_terminal
        assert merged.completed_at is not None

    def test_mismatched_id_rejected(self, make_record) -> None:
        with pytest.raises(ValueError, match="Cannot merge"):
            make_record(job_id="a").merged_with(make_record(job_id="b"))
