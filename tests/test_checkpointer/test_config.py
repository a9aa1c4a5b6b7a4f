"""Tests for configurable field specs and locator helpers."""

from datetime import datetime, timezone

import pytest

from stepstore.checkpointers import (
    CHECKPOINT_THREAD_ID,
    CHECKPOINT_THREAD_TS,
    ConfigurableFieldSpec,
    InMemoryCheckpointer,
    get_checkpoint_id,
    get_thread_id,
    get_thread_ts,
    make_config,
    normalize_ts,
)
from stepstore.exceptions import InvalidConfigError


class TestFieldSpecs:
    def test_thread_id_spec(self):
        assert CHECKPOINT_THREAD_ID.id == "thread_id"
        assert CHECKPOINT_THREAD_ID.annotation is str
        assert CHECKPOINT_THREAD_ID.name == "Thread ID"
        assert CHECKPOINT_THREAD_ID.default == ""
        assert CHECKPOINT_THREAD_ID.is_shared is True
        assert CHECKPOINT_THREAD_ID.dependencies is None

    def test_thread_ts_spec(self):
        assert CHECKPOINT_THREAD_TS.id == "thread_ts"
        assert CHECKPOINT_THREAD_TS.name == "Thread Timestamp"
        assert CHECKPOINT_THREAD_TS.default is None
        assert CHECKPOINT_THREAD_TS.is_shared is True
        assert CHECKPOINT_THREAD_TS.dependencies is None
        assert "latest" in CHECKPOINT_THREAD_TS.description

    def test_saver_advertises_both(self):
        specs = InMemoryCheckpointer().config_specs
        assert [s.id for s in specs] == ["thread_id", "thread_ts"]

    def test_subclass_can_extend(self):
        extra = ConfigurableFieldSpec(id="namespace", annotation=str, default="main")

        class NamespacedSaver(InMemoryCheckpointer):
            @property
            def config_specs(self):
                return [*super().config_specs, extra]

        specs = NamespacedSaver().config_specs
        assert [s.id for s in specs] == ["thread_id", "thread_ts", "namespace"]

    def test_spec_defaults(self):
        spec = ConfigurableFieldSpec(id="x", annotation=int)
        assert spec.name is None
        assert spec.description is None
        assert spec.default is None
        assert spec.is_shared is False
        assert spec.dependencies is None

    def test_frozen(self):
        with pytest.raises(AttributeError):
            CHECKPOINT_THREAD_ID.default = "x"  # type: ignore[misc]


class TestMakeConfig:
    def test_thread_only(self):
        assert make_config("t-1") == {"configurable": {"thread_id": "t-1"}}

    def test_with_ts(self):
        config = make_config("t-1", "2024-05-01T12:00:00+00:00")
        assert config["configurable"]["thread_ts"] == "2024-05-01T12:00:00+00:00"

    def test_datetime_ts_normalized(self):
        config = make_config("t-1", datetime(2024, 5, 1, 12, tzinfo=timezone.utc))
        assert config["configurable"]["thread_ts"] == "2024-05-01T12:00:00+00:00"

    def test_extra_fields(self):
        config = make_config("t-1", namespace="child")
        assert config["configurable"]["namespace"] == "child"

    def test_with_checkpoint_id(self):
        config = make_config("t-1", "2024-05-01T12:00:00Z", checkpoint_id=3)
        assert config == {"configurable": {"thread_id": "t-1", "thread_ts": "2024-05-01T12:00:00+00:00", "checkpoint_id": 3}}


class TestGetThreadId:
    def test_returns_id(self):
        assert get_thread_id(make_config("t-1")) == "t-1"

    @pytest.mark.parametrize(
        "config",
        [
            None,
            {},
            {"configurable": {}},
            {"configurable": {"thread_id": ""}},
            {"configurable": {"thread_id": 42}},
        ],
    )
    def test_missing_or_invalid(self, config):
        with pytest.raises(InvalidConfigError) as exc_info:
            get_thread_id(config)
        assert exc_info.value.field == "thread_id"


class TestGetThreadTs:
    def test_absent_means_latest(self):
        assert get_thread_ts(make_config("t-1")) is None
        assert get_thread_ts({"configurable": {"thread_id": "t-1", "thread_ts": None}}) is None

    def test_normalizes_offset(self):
        config = {"configurable": {"thread_id": "t-1", "thread_ts": "2024-05-01T14:00:00+02:00"}}
        assert get_thread_ts(config) == "2024-05-01T12:00:00+00:00"

    def test_malformed_raises(self):
        config = {"configurable": {"thread_id": "t-1", "thread_ts": "yesterday"}}
        with pytest.raises(InvalidConfigError, match="ISO-8601"):
            get_thread_ts(config)


class TestGetCheckpointId:
    def test_absent(self):
        assert get_checkpoint_id(make_config("t-1")) is None
        assert get_checkpoint_id(None) is None

    def test_returns_id(self):
        assert get_checkpoint_id(make_config("t-1", checkpoint_id=0)) == 0

    @pytest.mark.parametrize("value", ["7", 1.5, True])
    def test_non_integer_raises(self, value):
        with pytest.raises(InvalidConfigError) as exc_info:
            get_checkpoint_id({"configurable": {"thread_id": "t-1", "checkpoint_id": value}})
        assert exc_info.value.field == "checkpoint_id"


class TestNormalizeTs:
    def test_naive_taken_as_utc(self):
        assert normalize_ts("2024-05-01T12:00:00") == "2024-05-01T12:00:00+00:00"

    def test_idempotent(self):
        ts = "2024-05-01T12:00:00.123456+00:00"
        assert normalize_ts(normalize_ts(ts)) == ts

    def test_normalized_strings_sort_chronologically(self):
        values = ["2024-05-01T12:00:00.500000+00:00", "2024-05-01T14:00:00+02:00", "2024-05-01T11:59:59+00:00"]
        normalized = sorted(normalize_ts(v) for v in values)
        assert normalized == [
            "2024-05-01T11:59:59+00:00",
            "2024-05-01T12:00:00+00:00",
            "2024-05-01T12:00:00.500000+00:00",
        ]

    def test_z_suffix_is_utc(self):
        assert normalize_ts("2024-05-01T12:00:00Z") == "2024-05-01T12:00:00+00:00"
        assert normalize_ts("2024-05-01T12:00:00.123z") == "2024-05-01T12:00:00.123000+00:00"

    def test_z_suffix_in_locator(self):
        config = {"configurable": {"thread_id": "t-1", "thread_ts": "2024-05-01T12:00:00.000Z"}}
        assert get_thread_ts(config) == "2024-05-01T12:00:00+00:00"

    def test_wrong_type_raises(self):
        with pytest.raises(InvalidConfigError):
            normalize_ts(12345)  # type: ignore[arg-type]
