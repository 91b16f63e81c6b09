"""Service layer for storing and querying version records."""
import logging
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, tuple_
from sqlalchemy.ext.asyncio import AsyncSession

from models.version import Version, VersionEntityType
from schemas.version import VersionCreate

logger = logging.getLogger(__name__)

# Keep at most this many versions per entity (oldest are pruned on insert)
MAX_VERSIONS_PER_ENTITY = 50

# Store a full state snapshot every N versions
SNAPSHOT_INTERVAL = 10


def _entity_type_value(entity_type: VersionEntityType | str) -> str:
    return entity_type.value if isinstance(entity_type, VersionEntityType) else entity_type


class VersionService:
    """Service for persisting and retrieving version records."""

    def __init__(
        self,
        max_versions: int = MAX_VERSIONS_PER_ENTITY,
        snapshot_interval: int = SNAPSHOT_INTERVAL,
    ) -> None:
        self.max_versions = max_versions
        self.snapshot_interval = snapshot_interval

    async def create_version(
        self,
        db: AsyncSession,
        data: VersionCreate,
        current_state: Any = None,
    ) -> Version:
        """
        Persist a version record.

        Before inserting, the entity's oldest versions are pruned so that at most
        ``max_versions`` remain afterwards. ``current_state`` is stored as a
        snapshot once ``snapshot_interval`` versions exist since the latest
        snapshot (or in total, before the first one). Counting from the latest
        snapshot keeps snapshots coming after pruning holds the count steady.

        Args:
            db: Database session.
            data: Validated version payload.
            current_state: Full state after the change, used for snapshots.

        Returns:
            The flushed Version record.
        """
        entity_type = _entity_type_value(data.entity_type)

        await self.enforce_version_limit(db, entity_type, data.entity_id, self.max_versions - 1)
        since_snapshot = await self.count_versions_since_snapshot(db, entity_type, data.entity_id)

        snapshot = None
        if current_state is not None and since_snapshot >= self.snapshot_interval:
            snapshot = current_state

        version = Version(
            entity_type=entity_type,
            entity_id=data.entity_id,
            action_type=data.action_type.value,
            description=data.description,
            redo=data.patch_dump("redo"),
            undo=data.patch_dump("undo"),
            snapshot=snapshot,
            previous_hash=data.previous_hash,
            current_hash=data.current_hash,
            session_id=data.session_id,
            version_metadata=data.metadata,
        )
        db.add(version)
        await db.flush()
        await db.refresh(version)
        return version

    async def get_version(self, db: AsyncSession, version_id: UUID) -> Version | None:
        """Get a version by id."""
        result = await db.execute(select(Version).where(Version.id == version_id))
        return result.scalar_one_or_none()

    async def get_version_count(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
    ) -> int:
        """Count versions stored for an entity."""
        stmt = (
            select(func.count())
            .select_from(Version)
            .where(
                Version.entity_type == _entity_type_value(entity_type),
                Version.entity_id == entity_id,
            )
        )
        return (await db.execute(stmt)).scalar_one()

    async def get_version_history(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Version], int]:
        """
        Get versions of an entity, newest first.

        Args:
            db: Database session.
            entity_type: Type of entity.
            entity_id: ID of the entity.
            limit: Maximum records to return.
            offset: Number of records to skip.

        Returns:
            Tuple of (version records, total count).
        """
        total = await self.get_version_count(db, entity_type, entity_id)
        stmt = (
            select(Version)
            .where(
                Version.entity_type == _entity_type_value(entity_type),
                Version.entity_id == entity_id,
            )
            .order_by(Version.created_at.desc(), Version.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all()), total

    async def get_version_history_summary(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
        limit: int = 50,
    ) -> list[dict]:
        """Get id/description/action/session/created_at of recent versions, newest first."""
        stmt = (
            select(
                Version.id,
                Version.action_type,
                Version.description,
                Version.session_id,
                Version.created_at,
            )
            .where(
                Version.entity_type == _entity_type_value(entity_type),
                Version.entity_id == entity_id,
            )
            .order_by(Version.created_at.desc(), Version.id.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return [dict(row._mapping) for row in result.all()]

    async def get_latest_version(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
    ) -> Version | None:
        """Get the most recent version of an entity."""
        versions, _ = await self.get_version_history(db, entity_type, entity_id, limit=1)
        return versions[0] if versions else None

    async def get_latest_snapshot(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
    ) -> Version | None:
        """
        Get the most recent version of an entity that stores a full state snapshot.

        Replaying the redo patches of later versions onto its snapshot gives the
        entity's current state without walking the whole history.
        """
        stmt = (
            select(Version)
            .where(
                Version.entity_type == _entity_type_value(entity_type),
                Version.entity_id == entity_id,
                # Assigning None to a JSONB column stores JSON null, not SQL NULL
                func.jsonb_typeof(Version.snapshot) != "null",
            )
            .order_by(Version.created_at.desc(), Version.id.desc())
            .limit(1)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def count_versions_since_snapshot(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
    ) -> int:
        """Count versions from the latest snapshot on (all versions if there is none)."""
        latest = await self.get_latest_snapshot(db, entity_type, entity_id)
        if latest is None:
            return await self.get_version_count(db, entity_type, entity_id)
        stmt = (
            select(func.count())
            .select_from(Version)
            .where(
                Version.entity_type == _entity_type_value(entity_type),
                Version.entity_id == entity_id,
                tuple_(Version.created_at, Version.id) >= tuple_(latest.created_at, latest.id),
            )
        )
        return (await db.execute(stmt)).scalar_one()

    async def list_versions_ascending(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
        limit: int = 100,
    ) -> list[Version]:
        """Get the most recent ``limit`` versions of an entity, oldest first."""
        versions, _ = await self.get_version_history(db, entity_type, entity_id, limit=limit)
        versions.reverse()
        return versions

    async def get_versions_by_session(
        self,
        db: AsyncSession,
        session_id: str,
        limit: int = 100,
    ) -> list[Version]:
        """Get versions recorded in an editing session, newest first."""
        stmt = (
            select(Version)
            .where(Version.session_id == session_id)
            .order_by(Version.created_at.desc(), Version.id.desc())
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def enforce_version_limit(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
        keep: int,
    ) -> int:
        """
        Delete the oldest versions of an entity so that at most ``keep`` remain.

        Returns:
            Number of records deleted.
        """
        entity_type_value = _entity_type_value(entity_type)
        keep_ids = (
            select(Version.id)
            .where(
                Version.entity_type == entity_type_value,
                Version.entity_id == entity_id,
            )
            .order_by(Version.created_at.desc(), Version.id.desc())
            .limit(max(keep, 0))
        )
        stmt = delete(Version).where(
            Version.entity_type == entity_type_value,
            Version.entity_id == entity_id,
            Version.id.not_in(keep_ids.scalar_subquery()),
        )
        result = await db.execute(stmt)
        if result.rowcount:
            logger.debug(
                "Pruned %d versions of %s %s", result.rowcount, entity_type_value, entity_id,
            )
        return result.rowcount

    async def delete_versions_for_entity(
        self,
        db: AsyncSession,
        entity_type: VersionEntityType | str,
        entity_id: UUID,
    ) -> int:
        """
        Delete all versions of an entity.

        Returns:
            Number of deleted records.
        """
        stmt = delete(Version).where(
            Version.entity_type == _entity_type_value(entity_type),
            Version.entity_id == entity_id,
        )
        result = await db.execute(stmt)
        return result.rowcount

    async def cleanup_old_versions(self, db: AsyncSession, max_versions: int | None = None) -> int:
        """
        Enforce the per-entity limit across every entity that has versions.

        Returns:
            Total number of records deleted.
        """
        keep = self.max_versions if max_versions is None else max_versions
        stmt = (
            select(Version.entity_type, Version.entity_id)
            .group_by(Version.entity_type, Version.entity_id)
            .having(func.count() > keep)
        )
        over_limit = (await db.execute(stmt)).all()
        deleted = 0
        for entity_type, entity_id in over_limit:
            deleted += await self.enforce_version_limit(db, entity_type, entity_id, keep)
        return deleted


version_service = VersionService()
