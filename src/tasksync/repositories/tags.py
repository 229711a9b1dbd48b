"""Tag CRUD."""
from typing import Any, Dict, List, Optional

from tasksync.errors import NotFoundError

TABLE = "tags"
LINK_TABLE = "task_tags"

Row = Dict[str, Any]


class TagRepository:
    def __init__(self, store, tracker):
        self.store = store
        self.tracker = tracker

    async def list(self) -> List[Row]:
        """All tags, alphabetically."""
        tags = await self.store.query_all(TABLE)
        return sorted(tags, key=lambda t: t["name"])

    async def get(self, tag_id: int) -> Optional[Row]:
        return await self.store.query_one(TABLE, tag_id)

    async def create(self, name: str) -> Row:
        tag_id = await self.store.insert(TABLE, {"name": name})
        await self.tracker.mark_pending(TABLE, tag_id)
        return {"id": tag_id, "name": name}

    async def update(self, tag_id: int, name: str) -> Row:
        if await self.store.update(TABLE, tag_id, {"name": name}) == 0:
            raise NotFoundError(f"Tag {tag_id} not found")
        await self.tracker.mark_pending(TABLE, tag_id)
        return {"id": tag_id, "name": name}

    async def delete(self, tag_id: int) -> None:
        """Delete a tag and its task links (links first)."""
        if await self.store.query_one(TABLE, tag_id) is None:
            raise NotFoundError(f"Tag {tag_id} not found")
        for link in await self.store.query_where(LINK_TABLE, tag_id=tag_id):
            await self.store.delete(LINK_TABLE, link["id"])
            await self.tracker.mark_pending(LINK_TABLE, link["id"])
        await self.store.delete(TABLE, tag_id)
        await self.tracker.mark_pending(TABLE, tag_id)

    async def tasks(self, tag_id: int) -> List[Row]:
        """Tasks carrying this tag, by task id."""
        links = await self.store.query_where(LINK_TABLE, tag_id=tag_id)
        tasks = []
        for link in links:
            task = await self.store.query_one("tasks", link["task_id"])
            if task is not None:
                tasks.append(task)
        return sorted(tasks, key=lambda t: t["id"])
