"""Tests specific to SqliteCheckpointer."""

from contextlib import aclosing

import pytest

from stepstore.checkpointers import (
    Checkpoint,
    CheckpointMetadata,
    CheckpointSource,
    SqliteCheckpointer,
    make_config,
)
from stepstore.checkpointers._migrate import SCHEMA_VERSION, detect_schema_version
from stepstore.exceptions import SchemaVersionError, StorageError

# Skip all tests if aiosqlite is not installed
aiosqlite = pytest.importorskip("aiosqlite")


@pytest.fixture
async def checkpointer(tmp_path):
    """Create a fresh SqliteCheckpointer for each test."""
    cp = SqliteCheckpointer(str(tmp_path / "test.db"))
    await cp.initialize()
    yield cp
    await cp.close()


def _make_checkpoint(second=0, **channels):
    return Checkpoint(
        ts=f"2024-05-01T12:00:{second:02d}+00:00",
        channel_values=dict(channels),
        channel_versions={name: 1 for name in channels},
    )


def _meta(step=0):
    return CheckpointMetadata(source=CheckpointSource.LOOP, step=step)


class TestLifecycle:
    async def test_persists_across_connections(self, tmp_path):
        path = str(tmp_path / "test.db")
        async with SqliteCheckpointer(path) as cp:
            config = await cp.put(make_config("t-1"), _make_checkpoint(1, x=1), _meta())

        async with SqliteCheckpointer(path) as cp:
            item = await cp.get_tuple(config)
            assert item is not None
            assert item.checkpoint.channel_values == {"x": 1}

    async def test_lazy_initialization(self, tmp_path):
        cp = SqliteCheckpointer(str(tmp_path / "lazy.db"))
        try:
            assert await cp.get_tuple(make_config("t-1")) is None
            await cp.put(make_config("t-1"), _make_checkpoint(1), _meta())
            assert await cp.get(make_config("t-1")) is not None
        finally:
            await cp.close()

    async def test_in_memory_database(self):
        async with SqliteCheckpointer(":memory:") as cp:
            config = await cp.put(make_config("t-1"), _make_checkpoint(1, x=1), _meta())
            assert (await cp.get(config)).channel_values == {"x": 1}

    async def test_initialize_twice_is_noop(self, checkpointer):
        await checkpointer.initialize()
        await checkpointer.put(make_config("t-1"), _make_checkpoint(1), _meta())

    async def test_close_twice(self, checkpointer):
        await checkpointer.close()
        await checkpointer.close()


class TestSchema:
    async def test_fresh_database_gets_current_schema(self, checkpointer):
        assert await detect_schema_version(checkpointer._db) == SCHEMA_VERSION

    async def test_newer_schema_refused(self, tmp_path):
        path = str(tmp_path / "future.db")
        async with aiosqlite.connect(path) as db:
            await db.execute("CREATE TABLE _schema_version (version INTEGER NOT NULL)")
            await db.execute("INSERT INTO _schema_version (version) VALUES (?)", (SCHEMA_VERSION + 1,))
            await db.commit()

        cp = SqliteCheckpointer(path)
        with pytest.raises(SchemaVersionError) as exc_info:
            await cp.initialize()
        assert exc_info.value.found == SCHEMA_VERSION + 1
        assert exc_info.value.supported == SCHEMA_VERSION
        await cp.close()

    async def test_schema_error_is_storage_error(self):
        assert issubclass(SchemaVersionError, StorageError)


class TestStorageErrors:
    async def test_put_failure_wrapped(self, checkpointer):
        await checkpointer._db.execute("DROP TABLE checkpoints")
        with pytest.raises(StorageError) as exc_info:
            await checkpointer.put(make_config("t-1"), _make_checkpoint(1), _meta())
        assert exc_info.value.operation == "put"
        assert exc_info.value.__cause__ is not None

    async def test_read_failure_wrapped(self, checkpointer):
        await checkpointer._db.execute("DROP TABLE checkpoints")
        with pytest.raises(StorageError, match="get_tuple"):
            await checkpointer.get_tuple(make_config("t-1"))

    async def test_history_failure_wrapped(self, checkpointer):
        await checkpointer._db.execute("DROP TABLE checkpoints")
        with pytest.raises(StorageError) as exc_info:
            async for _ in checkpointer.list_checkpoints(make_config("t-1")):
                pass
        assert exc_info.value.operation == "list_checkpoints"


class TestRows:
    async def test_one_row_per_put(self, checkpointer):
        config = make_config("t-1")
        for i in range(3):
            config = await checkpointer.put(config, _make_checkpoint(1, x=i), _meta(step=i))

        rows = await checkpointer._db.execute_fetchall("SELECT id, step, parent_id, parent_ts FROM checkpoints ORDER BY id")
        assert [r[1] for r in rows] == [0, 1, 2]
        assert rows[0][2] is None
        assert rows[0][3] is None
        assert [r[2] for r in rows[1:]] == [r[0] for r in rows[:-1]]
        assert rows[1][3] == "2024-05-01T12:00:01+00:00"
        assert config["configurable"]["checkpoint_id"] == rows[-1][0]

    async def test_metadata_columns(self, checkpointer):
        metadata = CheckpointMetadata(source=CheckpointSource.UPDATE, step=4, writes={"editor": 1})
        checkpoint = _make_checkpoint(1)
        checkpoint.v = 2
        await checkpointer.put(make_config("t-1"), checkpoint, metadata)

        rows = await checkpointer._db.execute_fetchall("SELECT source, step, v FROM checkpoints")
        assert rows == [("update", 4, 2)]


class TestListThreads:
    async def test_summaries(self, checkpointer):
        config = await checkpointer.put(make_config("t-1"), _make_checkpoint(1), _meta(step=0))
        await checkpointer.put(config, _make_checkpoint(2), _meta(step=1))
        await checkpointer.put(make_config("t-2"), _make_checkpoint(3), _meta(step=0))

        summaries = await checkpointer.list_threads()
        assert [s.thread_id for s in summaries] == ["t-2", "t-1"]
        t1 = summaries[1]
        assert t1.checkpoint_count == 2
        assert t1.latest_step == 1
        assert t1.latest_ts == "2024-05-01T12:00:02+00:00"

    async def test_limit(self, checkpointer):
        for i in range(3):
            await checkpointer.put(make_config(f"t-{i}"), _make_checkpoint(i), _meta())
        assert len(await checkpointer.list_threads(limit=2)) == 2

    async def test_empty(self, checkpointer):
        assert await checkpointer.list_threads() == []


class TestCursorRelease:
    async def test_aclosing_releases_cursor(self, checkpointer):
        config = make_config("t-1")
        for i in range(3):
            config = await checkpointer.put(config, _make_checkpoint(i), _meta(step=i))

        async with aclosing(checkpointer.list_checkpoints(make_config("t-1"))) as history:
            async for item in history:
                assert item.metadata.step == 2
                break

        await checkpointer.put(config, _make_checkpoint(9), _meta(step=3))
        assert (await checkpointer.get(make_config("t-1"))).ts == "2024-05-01T12:00:09+00:00"

    async def test_interleaved_reads(self, checkpointer):
        """Two history iterations can be open at once."""
        config = make_config("t-1")
        for i in range(2):
            config = await checkpointer.put(config, _make_checkpoint(i), _meta(step=i))

        first = checkpointer.list_checkpoints(make_config("t-1"))
        second = checkpointer.list_checkpoints(make_config("t-1"))
        a = await first.__anext__()
        b = await second.__anext__()
        assert a.config == b.config
        await first.aclose()
        await second.aclose()
