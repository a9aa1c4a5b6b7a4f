"""Tests for checkpoint serializers."""

import pytest

from stepstore.checkpointers import Checkpoint, InMemoryCheckpointer, JsonSerializer, PickleSerializer, make_config
from stepstore.checkpointers.types import CheckpointMetadata, CheckpointSource


class TestJsonSerializer:
    def test_checkpoint_dict_survives(self):
        s = JsonSerializer()
        cp = Checkpoint(
            ts="2024-05-01T12:00:00+00:00",
            channel_values={"docs": ["a", "b"], "score": 0.5, "done": False, "none": None},
            channel_versions={"docs": 1, "score": 2, "done": 3, "none": 4},
            versions_seen={"rank": {"docs": 1}},
        )
        assert Checkpoint.from_dict(s.deserialize(s.serialize(cp.to_dict()))) == cp

    def test_returns_bytes(self):
        assert isinstance(JsonSerializer().serialize({"a": 1}), bytes)

    def test_tuples_become_lists(self):
        s = JsonSerializer()
        assert s.deserialize(s.serialize({"pair": (1, 2)})) == {"pair": [1, 2]}

    def test_non_serializable_raises_by_default(self):
        """Non-JSON types raise TypeError by default (strict mode)."""
        from datetime import datetime, timezone

        s = JsonSerializer()
        with pytest.raises(TypeError):
            s.serialize({"ts": datetime(2024, 1, 1, tzinfo=timezone.utc)})

    def test_lossy_mode_uses_str(self):
        """With lossy=True, non-JSON types fall back to str()."""
        from datetime import datetime, timezone

        s = JsonSerializer(lossy=True)
        result = s.deserialize(s.serialize({"ts": datetime(2024, 1, 1, tzinfo=timezone.utc)}))
        assert isinstance(result["ts"], str)

    def test_cyclic_value_rejected(self):
        s = JsonSerializer()
        value: dict = {}
        value["self"] = value
        with pytest.raises(ValueError):
            s.serialize(value)


class TestPickleSerializer:
    def test_requires_explicit_opt_in(self):
        with pytest.raises(ValueError, match="allow_pickle=True"):
            PickleSerializer()

    def test_preserves_python_types(self):
        s = PickleSerializer(allow_pickle=True)
        data = {"key": (1, 2), "set": {4, 5}}
        assert s.deserialize(s.serialize(data)) == data


class TestSaverSerializerInjection:
    def test_default_is_json(self):
        assert isinstance(InMemoryCheckpointer().serializer, JsonSerializer)

    def test_injected_serializer_used(self):
        s = PickleSerializer(allow_pickle=True)
        assert InMemoryCheckpointer(serializer=s).serializer is s

    def test_savers_do_not_share_serializer(self):
        assert InMemoryCheckpointer().serializer is not InMemoryCheckpointer().serializer

    async def test_pickle_keeps_sets_through_saver(self):
        saver = InMemoryCheckpointer(serializer=PickleSerializer(allow_pickle=True))
        cp = Checkpoint(ts="2024-05-01T12:00:00+00:00", channel_values={"tags": {"a", "b"}}, channel_versions={"tags": 1})
        config = await saver.put(make_config("t-1"), cp, CheckpointMetadata(source=CheckpointSource.INPUT, step=-1))

        fetched = await saver.get(config)
        assert fetched.channel_values["tags"] == {"a", "b"}
