"""Project CRUD. Deleting a project deletes its tasks first."""
import logging
from typing import Any, Dict, List, Optional

from tasksync.errors import NotFoundError
from tasksync.repositories.tasks import TaskRepository

logger = logging.getLogger(__name__)

TABLE = "projects"

Row = Dict[str, Any]


class ProjectRepository:
    def __init__(self, store, tracker, tasks: Optional[TaskRepository] = None):
        self.store = store
        self.tracker = tracker
        self.tasks = tasks or TaskRepository(store, tracker)

    async def list(self) -> List[Row]:
        return await self.store.query_all(TABLE)

    async def get(self, project_id: int) -> Optional[Row]:
        return await self.store.query_one(TABLE, project_id)

    async def create(self, name: str) -> Row:
        project_id = await self.store.insert(TABLE, {"name": name})
        await self.tracker.mark_pending(TABLE, project_id)
        logger.info("Project %s created", project_id)
        return {"id": project_id, "name": name}

    async def update(self, project_id: int, name: str) -> Row:
        if await self.store.update(TABLE, project_id, {"name": name}) == 0:
            raise NotFoundError(f"Project {project_id} not found")
        await self.tracker.mark_pending(TABLE, project_id)
        return {"id": project_id, "name": name}

    async def delete(self, project_id: int) -> None:
        """Delete a project, cascading to its tasks and their tag links."""
        if await self.store.query_one(TABLE, project_id) is None:
            raise NotFoundError(f"Project {project_id} not found")
        tasks = await self.tasks.list_by_project(project_id)
        for task in tasks:
            await self.tasks.delete(task["id"])
        await self.store.delete(TABLE, project_id)
        await self.tracker.mark_pending(TABLE, project_id)
        logger.info("Project %s deleted with %d task(s)", project_id, len(tasks))
