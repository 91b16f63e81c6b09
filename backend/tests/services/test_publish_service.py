"""Tests for publishing drafts and reverting to published content."""
from typing import Any

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Insert

from models.base import RowLifecycle
from services.entity_store import (
    PublishableType,
    component_repository,
    layer_style_repository,
    page_folder_repository,
    page_layers_repository,
    page_repository,
)
from services.exceptions import PublishBatchError
from services.publish_service import PublishService, PublishStats, publish_service


async def _components(db: AsyncSession, count: int) -> list:
    return [
        await component_repository.create_draft(db, name=f"C{i}", layers=[{"id": f"l{i}"}])
        for i in range(count)
    ]


class TestPublishEntityType:
    """Tests for PublishService.publish_entity_type()."""

    async def test__first_publish__inserts_published_copies(
        self, db_session: AsyncSession,
    ) -> None:
        """Every active draft gets a published row with the same id and hash."""
        drafts = await _components(db_session, 3)
        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        assert stats == PublishStats(added=3, updated=0, deleted=0)

        published = await component_repository.list_published(db_session)
        assert sorted(row.id for row in published) == sorted(row.id for row in drafts)
        by_id = {row.id: row for row in published}
        for draft in drafts:
            assert by_id[draft.id].is_published is True
            assert by_id[draft.id].content_hash == draft.content_hash
            assert by_id[draft.id].layers == draft.layers

    async def test__second_publish__writes_nothing(self, db_session: AsyncSession) -> None:
        """Publishing again without draft changes is a no-op."""
        await _components(db_session, 2)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        assert stats.total == 0

    async def test__changed_draft__updates_published_row(self, db_session: AsyncSession) -> None:
        """An edit after publishing is published as an update."""
        (draft,) = await _components(db_session, 1)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        edited = await component_repository.update_draft(db_session, draft.id, name="Renamed")

        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)

        assert stats == PublishStats(added=0, updated=1, deleted=0)
        published = await component_repository.get_published_by_id(db_session, draft.id)
        assert published.name == "Renamed"
        assert published.content_hash == edited.content_hash

    async def test__soft_deleted_draft__removes_both_rows(self, db_session: AsyncSession) -> None:
        """The published row is deleted and the soft-deleted draft purged."""
        (draft,) = await _components(db_session, 1)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        await component_repository.soft_delete_draft(db_session, draft.id)

        # Published stays live until the next publish
        assert await component_repository.get_published_by_id(db_session, draft.id) is not None

        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)

        assert stats == PublishStats(added=0, updated=0, deleted=1)
        assert await component_repository.get_published_by_id(
            db_session, draft.id, include_deleted=True,
        ) is None
        assert await component_repository.get_draft_by_id(
            db_session, draft.id, include_deleted=True,
        ) is None

    async def test__soft_deleted_unpublished_draft__purged(self, db_session: AsyncSession) -> None:
        """A draft deleted before it was ever published is simply removed."""
        (draft,) = await _components(db_session, 1)
        await component_repository.soft_delete_draft(db_session, draft.id)
        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        assert stats.total == 0
        lifecycles = await component_repository.find_draft_lifecycles(db_session, [str(draft.id)])
        assert lifecycles[str(draft.id)] is RowLifecycle.HARD_DELETED

    async def test__orphaned_published_row__deleted(self, db_session: AsyncSession) -> None:
        """A published row whose draft was hard-deleted is removed."""
        (draft,) = await _components(db_session, 1)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        await component_repository.hard_delete_draft(db_session, draft.id)

        stats = await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)

        assert stats.deleted == 1
        assert await component_repository.list_published(db_session) == []

    async def test__published_rows_are_never_soft_deleted(
        self, db_session: AsyncSession,
    ) -> None:
        """Publish writes active published rows only."""
        await _components(db_session, 2)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        published = await component_repository.list_published(db_session, include_deleted=True)
        assert all(row.deleted_at is None for row in published)

    async def test__small_batches__same_result(self, db_session: AsyncSession) -> None:
        """Batching splits the writes without changing what is written."""
        await _components(db_session, 5)
        stats = await PublishService(batch_size=2).publish_entity_type(
            db_session, PublishableType.COMPONENTS,
        )
        assert stats.added == 5
        assert len(await component_repository.list_published(db_session)) == 5

    async def test__batch_failure__earlier_batches_stay_applied(
        self, db_session: AsyncSession, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """A failed batch raises with its position; a retry completes the publish."""
        await _components(db_session, 3)
        original_execute = db_session.execute
        inserts = 0

        async def failing_execute(statement: Any, *args: Any, **kwargs: Any) -> Any:
            nonlocal inserts
            if isinstance(statement, Insert):
                inserts += 1
                if inserts == 2:
                    raise SQLAlchemyError("connection lost")
            return await original_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", failing_execute)
        service = PublishService(batch_size=1)

        with pytest.raises(PublishBatchError) as exc_info:
            await service.publish_entity_type(db_session, PublishableType.COMPONENTS)

        assert exc_info.value.batch_index == 1
        assert exc_info.value.applied == 1
        assert exc_info.value.step == "upsert"
        assert len(await component_repository.list_published(db_session)) == 1

        monkeypatch.setattr(db_session, "execute", original_execute)
        stats = await service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        assert stats.added == 2
        assert len(await component_repository.list_published(db_session)) == 3


class TestPublishAll:
    """Tests for publishing several types in dependency order."""

    async def test__publish_all__parents_before_children(self, db_session: AsyncSession) -> None:
        """Pages are published before their layer trees so foreign keys resolve."""
        page = await page_repository.create_draft(db_session, name="Home", slug="home")
        await page_layers_repository.create_draft(
            db_session, page_id=page.id, layers=[{"id": "body"}],
        )
        results = await publish_service.publish_all(db_session)

        assert results[PublishableType.PAGES].added == 1
        assert results[PublishableType.PAGE_LAYERS].added == 1
        order = list(results)
        assert order.index(PublishableType.PAGES) < order.index(PublishableType.PAGE_LAYERS)
        assert await page_layers_repository.list_published(db_session) != []

    async def test__publish_all__deleted_folder_keeps_unrelated_pages(
        self, db_session: AsyncSession,
    ) -> None:
        """Deleting a folder removes its pages on publish; pages outside it survive."""
        folder = await page_folder_repository.create_draft(db_session, name="Blog", slug="blog")
        inside = await page_repository.create_draft(
            db_session, name="Post", slug="post", page_folder_id=folder.id,
        )
        moved = await page_repository.create_draft(
            db_session, name="About", slug="about", page_folder_id=folder.id,
        )
        moved_layers = await page_layers_repository.create_draft(
            db_session, page_id=moved.id, layers=[{"id": "body"}],
        )
        await publish_service.publish_all(db_session)

        # Moved to the root before the folder is deleted; not yet published there
        await page_repository.update_draft(db_session, moved.id, page_folder_id=None)
        await page_folder_repository.soft_delete_draft(db_session, folder.id)
        await publish_service.publish_all(db_session)

        assert await page_repository.get_draft_by_id(
            db_session, inside.id, include_deleted=True,
        ) is None
        assert await page_repository.get_published_by_id(db_session, inside.id) is None
        assert await page_repository.get_draft_by_id(db_session, moved.id) is not None
        published = await page_repository.get_published_by_id(db_session, moved.id)
        assert published.page_folder_id is None
        assert await page_layers_repository.get_draft_by_id(
            db_session, moved_layers.id,
        ) is not None
        assert await page_layers_repository.get_published_by_id(
            db_session, moved_layers.id,
        ) is not None

    async def test__publish_all__only_requested_types(self, db_session: AsyncSession) -> None:
        """Types not requested are left unpublished."""
        await _components(db_session, 1)
        await layer_style_repository.create_draft(db_session, name="Primary", classes="p-4")

        results = await publish_service.publish_all(
            db_session, [PublishableType.LAYER_STYLES],
        )

        assert list(results) == [PublishableType.LAYER_STYLES]
        assert await component_repository.list_published(db_session) == []

    async def test__preview__reports_pending_without_writing(
        self, db_session: AsyncSession,
    ) -> None:
        """Preview counts pending changes and leaves published rows untouched."""
        await _components(db_session, 2)
        pending = await publish_service.preview(db_session)
        assert pending[PublishableType.COMPONENTS].added == 2
        assert pending[PublishableType.FONTS].total == 0
        assert await component_repository.list_published(db_session) == []


class TestRevert:
    """Tests for discarding draft changes."""

    async def test__revert_entity_type__restores_published_content(
        self, db_session: AsyncSession,
    ) -> None:
        """Edited and deleted drafts return to published content; new drafts are removed."""
        edited, deleted = await _components(db_session, 2)
        await publish_service.publish_entity_type(db_session, PublishableType.COMPONENTS)
        await component_repository.update_draft(db_session, edited.id, name="Changed")
        await component_repository.soft_delete_draft(db_session, deleted.id)
        (new,) = await _components(db_session, 1)

        stats = await publish_service.revert_entity_type(db_session, PublishableType.COMPONENTS)

        assert stats.to_dict() == {"restored": 2, "removed": 1}
        drafts = {row.id: row for row in await component_repository.list_drafts(db_session)}
        assert set(drafts) == {edited.id, deleted.id}
        assert drafts[edited.id].name == "C0"
        assert drafts[deleted.id].lifecycle is RowLifecycle.ACTIVE
        assert new.id not in drafts

        # Nothing left to publish after a revert
        assert (await publish_service.plan(db_session, PublishableType.COMPONENTS)).is_noop
