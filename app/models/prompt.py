from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class PromptSequence(SQLModel, table=True):
    __tablename__ = "prompt_sequences"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", unique=True, index=True)
    suite_id: int = Field(foreign_key="blueprint_suites.id")
    user_id: int = Field(foreign_key="users.id", index=True)
    # "generating" | "active" | "partial" | "error" | "complete"
    status: str = Field(default="generating")
    tech_stack: str = Field(default="")
    total_prompts: int = Field(default=0)
    completed_prompts: int = Field(default=0)
    current_prompt_index: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ImplementationPrompt(SQLModel, table=True):
    __tablename__ = "implementation_prompts"
    __table_args__ = (
        UniqueConstraint("project_id", "sequence"),
        UniqueConstraint("project_id", "title"),
    )

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    suite_id: int = Field(foreign_key="blueprint_suites.id")
    user_id: int = Field(foreign_key="users.id", index=True)
    sequence: int
    category: str
    title: str
    content: str = Field(default="")
    prerequisites: str = Field(default="[]")  # JSON list of titles
    user_actions: str = Field(default="[]")  # JSON
    acceptance_criteria: str = Field(default="[]")  # JSON
    estimated_time: str = Field(default="")
    # "pending" | "unlocked" | "in_progress" | "completed" | "skipped"
    status: str = Field(default="pending")
    completed_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
