"""Tests for the VersionService."""
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from models.version import ActionType, VersionEntityType
from schemas.version import PatchOperationSchema, VersionCreate
from services.version_service import VersionService, version_service


def _version_data(
    entity_id: UUID,
    index: int,
    session_id: str | None = "session-1",
    entity_type: VersionEntityType = VersionEntityType.COMPONENT,
) -> VersionCreate:
    return VersionCreate(
        entity_type=entity_type,
        entity_id=entity_id,
        action_type=ActionType.UPDATE,
        description=f"Change {index}",
        redo=[PatchOperationSchema(op="replace", path="/0/text", value=f"v{index}")],
        undo=[PatchOperationSchema(op="remove", path="/0/text")],
        previous_hash=f"{index:064d}",
        current_hash=f"{index + 1:064d}",
        session_id=session_id,
    )


class TestCreateVersion:
    """Tests for VersionService.create_version()."""

    async def test__create_version__stores_both_patches(self, db_session: AsyncSession) -> None:
        """Redo and undo patches are stored; removals omit value."""
        entity_id = uuid4()
        version = await version_service.create_version(db_session, _version_data(entity_id, 0))
        assert version.id is not None
        assert version.created_at is not None
        assert version.entity_type == "component"
        assert version.redo == [{"op": "replace", "path": "/0/text", "value": "v0"}]
        assert version.undo == [{"op": "remove", "path": "/0/text"}]
        assert version.previous_hash == "0" * 64
        assert version.session_id == "session-1"
        assert version.snapshot is None

    async def test__create_version__snapshot_every_interval(
        self, db_session: AsyncSession,
    ) -> None:
        """A full state is stored when the existing count hits the interval."""
        service = VersionService(max_versions=50, snapshot_interval=3)
        entity_id = uuid4()
        snapshots = []
        for index in range(7):
            version = await service.create_version(
                db_session, _version_data(entity_id, index), current_state=[{"i": index}],
            )
            snapshots.append(version.snapshot)
        assert snapshots == [None, None, None, [{"i": 3}], None, None, [{"i": 6}]]

    async def test__create_version__snapshots_continue_at_retention_limit(
        self, db_session: AsyncSession,
    ) -> None:
        """Snapshots keep coming once pruning holds the version count steady."""
        service = VersionService(max_versions=5, snapshot_interval=3)
        entity_id = uuid4()
        snapshots = []
        for index in range(11):
            version = await service.create_version(
                db_session, _version_data(entity_id, index), current_state=[{"i": index}],
            )
            snapshots.append(version.snapshot)

        assert [i for i, snapshot in enumerate(snapshots) if snapshot is not None] == [3, 6, 9]
        assert await service.get_version_count(db_session, "component", entity_id) == 5
        latest = await service.get_latest_snapshot(db_session, "component", entity_id)
        assert latest.snapshot == [{"i": 9}]
        assert await service.count_versions_since_snapshot(
            db_session, "component", entity_id,
        ) == 2

    async def test__create_version__prunes_oldest(self, db_session: AsyncSession) -> None:
        """At most max_versions remain; the oldest are removed first."""
        service = VersionService(max_versions=3, snapshot_interval=100)
        entity_id = uuid4()
        for index in range(5):
            await service.create_version(db_session, _version_data(entity_id, index))
        versions, total = await service.get_version_history(
            db_session, VersionEntityType.COMPONENT, entity_id,
        )
        assert total == 3
        assert [v.description for v in versions] == ["Change 4", "Change 3", "Change 2"]

    async def test__create_version__limit_is_per_entity(self, db_session: AsyncSession) -> None:
        """Pruning one entity does not touch another."""
        service = VersionService(max_versions=2, snapshot_interval=100)
        first, second = uuid4(), uuid4()
        for index in range(2):
            await service.create_version(db_session, _version_data(second, index))
        for index in range(4):
            await service.create_version(db_session, _version_data(first, index))
        assert await service.get_version_count(db_session, "component", second) == 2


class TestQueries:
    """Tests for version history queries."""

    async def test__get_version_history__newest_first_with_paging(
        self, db_session: AsyncSession,
    ) -> None:
        """History is ordered newest first and paged by limit/offset."""
        entity_id = uuid4()
        for index in range(4):
            await version_service.create_version(db_session, _version_data(entity_id, index))
        versions, total = await version_service.get_version_history(
            db_session, VersionEntityType.COMPONENT, entity_id, limit=2, offset=1,
        )
        assert total == 4
        assert [v.description for v in versions] == ["Change 2", "Change 1"]

    async def test__get_version_history__filters_by_entity_type(
        self, db_session: AsyncSession,
    ) -> None:
        """The same id under another entity type is a different history."""
        entity_id = uuid4()
        await version_service.create_version(db_session, _version_data(entity_id, 0))
        versions, total = await version_service.get_version_history(
            db_session, VersionEntityType.LAYER_STYLE, entity_id,
        )
        assert versions == []
        assert total == 0

    async def test__list_versions_ascending(self, db_session: AsyncSession) -> None:
        """The most recent versions are returned oldest first."""
        entity_id = uuid4()
        for index in range(4):
            await version_service.create_version(db_session, _version_data(entity_id, index))
        versions = await version_service.list_versions_ascending(
            db_session, VersionEntityType.COMPONENT, entity_id, limit=3,
        )
        assert [v.description for v in versions] == ["Change 1", "Change 2", "Change 3"]

    async def test__get_latest_version(self, db_session: AsyncSession) -> None:
        """The latest version is the last one created."""
        entity_id = uuid4()
        assert await version_service.get_latest_version(
            db_session, VersionEntityType.COMPONENT, entity_id,
        ) is None
        for index in range(2):
            await version_service.create_version(db_session, _version_data(entity_id, index))
        latest = await version_service.get_latest_version(
            db_session, VersionEntityType.COMPONENT, entity_id,
        )
        assert latest.description == "Change 1"

    async def test__get_latest_snapshot__skips_versions_without_one(
        self, db_session: AsyncSession,
    ) -> None:
        """The newest version carrying a snapshot is returned, not the newest version."""
        service = VersionService(max_versions=50, snapshot_interval=2)
        entity_id = uuid4()
        assert await service.get_latest_snapshot(
            db_session, VersionEntityType.COMPONENT, entity_id,
        ) is None
        for index in range(4):
            await service.create_version(
                db_session, _version_data(entity_id, index), current_state=[{"i": index}],
            )
        latest = await service.get_latest_snapshot(
            db_session, VersionEntityType.COMPONENT, entity_id,
        )
        assert latest.description == "Change 2"
        assert latest.snapshot == [{"i": 2}]

    async def test__get_version_history_summary(self, db_session: AsyncSession) -> None:
        """Summaries carry id, action, description, session, and timestamp."""
        entity_id = uuid4()
        version = await version_service.create_version(db_session, _version_data(entity_id, 0))
        summary = await version_service.get_version_history_summary(
            db_session, VersionEntityType.COMPONENT, entity_id,
        )
        assert summary == [
            {
                "id": version.id,
                "action_type": "update",
                "description": "Change 0",
                "session_id": "session-1",
                "created_at": version.created_at,
            },
        ]

    async def test__get_versions_by_session(self, db_session: AsyncSession) -> None:
        """Versions across entities are grouped by editing session."""
        first, second = uuid4(), uuid4()
        session_id = f"session-{uuid4()}"
        await version_service.create_version(
            db_session, _version_data(first, 0, session_id=session_id),
        )
        await version_service.create_version(
            db_session,
            _version_data(second, 0, session_id=session_id, entity_type=VersionEntityType.PAGE_LAYERS),
        )
        await version_service.create_version(db_session, _version_data(first, 1, session_id="other"))
        versions = await version_service.get_versions_by_session(db_session, session_id)
        assert [v.entity_id for v in versions] == [second, first]


class TestRetention:
    """Tests for deleting and pruning versions."""

    async def test__delete_versions_for_entity(self, db_session: AsyncSession) -> None:
        """All versions of one entity are removed."""
        entity_id = uuid4()
        for index in range(3):
            await version_service.create_version(db_session, _version_data(entity_id, index))
        deleted = await version_service.delete_versions_for_entity(
            db_session, VersionEntityType.COMPONENT, entity_id,
        )
        assert deleted == 3
        assert await version_service.get_version_count(db_session, "component", entity_id) == 0

    async def test__cleanup_old_versions(self, db_session: AsyncSession) -> None:
        """Every entity over the limit is pruned down to it."""
        service = VersionService(max_versions=50, snapshot_interval=100)
        first, second = uuid4(), uuid4()
        for index in range(5):
            await service.create_version(db_session, _version_data(first, index))
        for index in range(2):
            await service.create_version(db_session, _version_data(second, index))
        deleted = await service.cleanup_old_versions(db_session, max_versions=2)
        assert deleted == 3
        assert await service.get_version_count(db_session, "component", first) == 2
        assert await service.get_version_count(db_session, "component", second) == 2
