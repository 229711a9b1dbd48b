"""Business record models: projects, tasks, tags and the task/tag junction."""
from typing import Dict, Optional, Tuple

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

# Tables included in sync, parents before dependents (FK order on insert).
TRACKED_TABLES: Tuple[str, ...] = ("projects", "tasks", "tags", "task_tags")

# Foreign-key columns per table and the table they point at. Used to
# translate references between the local and remote key spaces.
REFERENCES: Dict[str, Dict[str, str]] = {
    "tasks": {"project_id": "projects"},
    "task_tags": {"task_id": "tasks", "tag_id": "tags"},
}

INBOX_PROJECT_NAME = "Inbox"


class Project(SQLModel, table=True):
    __tablename__ = "projects"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class Task(SQLModel, table=True):
    __tablename__ = "tasks"

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    title: str
    description: Optional[str] = None


class Tag(SQLModel, table=True):
    __tablename__ = "tags"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class TaskTag(SQLModel, table=True):
    """
    Many-to-many link between tasks and tags.

    Carries a surrogate integer id so it can be tracked and synced like every
    other table; the (task_id, tag_id) pair stays unique.
    """

    __tablename__ = "task_tags"
    __table_args__ = (UniqueConstraint("task_id", "tag_id"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    task_id: int = Field(foreign_key="tasks.id", index=True)
    tag_id: int = Field(foreign_key="tags.id", index=True)
