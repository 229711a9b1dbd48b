"""Task CRUD and task/tag links. Every mutation marks the record for sync."""
import logging
from typing import Any, Dict, List, Optional

from tasksync.errors import NotFoundError

logger = logging.getLogger(__name__)

TABLE = "tasks"
LINK_TABLE = "task_tags"
EDITABLE_FIELDS = ("project_id", "title", "description")

Row = Dict[str, Any]


class TaskRepository:
    def __init__(self, store, tracker):
        self.store = store
        self.tracker = tracker

    async def list(self) -> List[Row]:
        return await self.store.query_all(TABLE)

    async def list_by_project(self, project_id: int) -> List[Row]:
        return await self.store.query_where(TABLE, project_id=project_id)

    async def get(self, task_id: int) -> Optional[Row]:
        return await self.store.query_one(TABLE, task_id)

    async def create(
        self, project_id: int, title: str, description: Optional[str] = None
    ) -> Row:
        if await self.store.query_one("projects", project_id) is None:
            raise NotFoundError(f"Project {project_id} not found")
        fields = {"project_id": project_id, "title": title, "description": description}
        task_id = await self.store.insert(TABLE, fields)
        await self.tracker.mark_pending(TABLE, task_id)
        logger.info("Task %s created in project %s", task_id, project_id)
        return {"id": task_id, **fields}

    async def update(self, task_id: int, **updates: Any) -> Row:
        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")
        if await self.store.update(TABLE, task_id, updates) == 0:
            raise NotFoundError(f"Task {task_id} not found")
        await self.tracker.mark_pending(TABLE, task_id)
        return await self.store.query_one(TABLE, task_id)

    async def delete(self, task_id: int) -> None:
        """Delete a task and its tag links (links first)."""
        if await self.store.query_one(TABLE, task_id) is None:
            raise NotFoundError(f"Task {task_id} not found")
        for link in await self.store.query_where(LINK_TABLE, task_id=task_id):
            await self.store.delete(LINK_TABLE, link["id"])
            await self.tracker.mark_pending(LINK_TABLE, link["id"])
        await self.store.delete(TABLE, task_id)
        await self.tracker.mark_pending(TABLE, task_id)
        logger.info("Task %s deleted", task_id)

    # ── Tags ──────────────────────────────────────────────────────────────────

    async def tags(self, task_id: int) -> List[Row]:
        links = await self.store.query_where(LINK_TABLE, task_id=task_id)
        tags = []
        for link in links:
            tag = await self.store.query_one("tags", link["tag_id"])
            if tag is not None:
                tags.append(tag)
        return tags

    async def add_tag(self, task_id: int, tag_id: int) -> Row:
        """Link a tag to a task. Linking twice is a no-op."""
        existing = await self.store.query_where(LINK_TABLE, task_id=task_id, tag_id=tag_id)
        if existing:
            return existing[0]
        link_id = await self.store.insert(LINK_TABLE, {"task_id": task_id, "tag_id": tag_id})
        await self.tracker.mark_pending(LINK_TABLE, link_id)
        return {"id": link_id, "task_id": task_id, "tag_id": tag_id}

    async def remove_tag(self, task_id: int, tag_id: int) -> int:
        """Unlink a tag from a task. Returns the number of links removed."""
        links = await self.store.query_where(LINK_TABLE, task_id=task_id, tag_id=tag_id)
        for link in links:
            await self.store.delete(LINK_TABLE, link["id"])
            await self.tracker.mark_pending(LINK_TABLE, link["id"])
        return len(links)
