"""Tests for configuration loading and validation (hr_config)."""

import pytest
import yaml

from hr_config import DEFAULT_CONFIG_PATH, ScheduleSync, get_active_config
from hr_config.loader import compute_checksum, load_yaml_file, validate_document
from hr_kernel.domain.approval import AggregationPolicy, ApproverRole, SubmissionKind


def _write(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


@pytest.fixture
def default_document():
    return load_yaml_file(DEFAULT_CONFIG_PATH)


class TestDefaults:
    def test_packaged_defaults_load(self):
        config = get_active_config()
        assert config.engine.aggregation_policy == AggregationPolicy.ANY_APPROVAL_WINS
        assert config.engine.max_lock_retries == 3
        assert ApproverRole.HR in config.roles.admin
        assert {k.kind for k in config.kinds} == set(SubmissionKind)
        assert len(config.checksum) == 64

    def test_only_leave_returns_to_work(self):
        config = get_active_config()
        assert config.kind(SubmissionKind.LEAVE).return_to_work
        assert not config.kind("sick_leave").return_to_work

    def test_deeplink(self):
        kind = get_active_config().kind("day_swap")
        assert kind.deeplink("abc") == "/day-swap-requests/abc"
        assert kind.notification_event == "DAY_SWAP_DECIDED"

    def test_trace_logged(self, captured_logs):
        get_active_config()
        traces = [r for r in captured_logs() if r["message"] == "HR_CONFIG_TRACE"]
        assert traces and traces[0]["config_id"] == "hr-approvals"


class TestOverrides:
    def test_sequential_policy(self, tmp_path, default_document):
        default_document["engine"]["aggregation_policy"] = "sequential"
        config = get_active_config(_write(tmp_path, default_document))
        assert config.engine.aggregation_policy == AggregationPolicy.SEQUENTIAL

    def test_checksum_tracks_content(self, default_document):
        before = compute_checksum(default_document)
        default_document["engine"]["max_lock_retries"] = 9
        assert compute_checksum(default_document) != before


class TestValidation:
    def test_all_errors_reported(self, tmp_path, default_document):
        default_document["engine"]["aggregation_policy"] = "majority"
        default_document["engine"]["max_lock_retries"] = -1
        default_document["roles"]["admin"] = ["HR", "CEO"]
        del default_document["kinds"]["day_swap"]
        default_document["notifications"]["queue_size"] = 0

        with pytest.raises(ValueError) as exc_info:
            get_active_config(_write(tmp_path, default_document))

        message = str(exc_info.value)
        assert "aggregation_policy" in message
        assert "max_lock_retries" in message
        assert "'CEO'" in message
        assert "kinds.day_swap is not configured" in message
        assert "queue_size" in message

    def test_unknown_kind_rejected(self, default_document):
        default_document["kinds"]["overtime"] = dict(default_document["kinds"]["leave"])
        assert "kinds.overtime: unknown submission kind" in validate_document(default_document)

    def test_missing_kind_field(self, default_document):
        del default_document["kinds"]["leave"]["title"]
        assert "kinds.leave.title is required" in validate_document(default_document)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_unknown_schedule_sync(self, default_document):
        default_document["kinds"]["sick_leave"]["schedule_sync"] = "half_days"
        default_document["kinds"]["sick_leave"]["schedule_notification_event"] = "X"
        assert (
            "kinds.sick_leave.schedule_sync: unknown mode 'half_days'"
            in validate_document(default_document)
        )

    def test_schedule_sync_needs_event(self, default_document):
        del default_document["kinds"]["leave"]["schedule_notification_event"]
        assert (
            "kinds.leave.schedule_notification_event is required with schedule_sync"
            in validate_document(default_document)
        )


class TestScheduleSync:
    def test_packaged_modes(self):
        config = get_active_config()
        assert config.kind("leave").schedule_sync == ScheduleSync.LEAVE_DAYS_OFF
        assert config.kind("leave").schedule_notification_event == "SHIFT_LEAVE_ADJUSTMENT"
        assert config.kind("day_swap").schedule_sync == ScheduleSync.DAY_SWAP
        assert config.kind("day_swap").schedule_notification_event == "SHIFT_SWAP_ADJUSTMENT"
        assert config.kind("hourly_leave").schedule_sync is None
        assert config.notifications.schedule_deeplink == "/shifts"

    def test_sync_can_be_switched_off(self, tmp_path, default_document):
        del default_document["kinds"]["leave"]["schedule_sync"]
        config = get_active_config(_write(tmp_path, default_document))
        assert config.kind("leave").schedule_sync is None
