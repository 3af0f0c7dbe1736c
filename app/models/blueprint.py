from datetime import datetime

from sqlmodel import Field, SQLModel


class BlueprintSuite(SQLModel, table=True):
    __tablename__ = "blueprint_suites"

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", unique=True, index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    conversation_id: int = Field(foreign_key="conversations.id")
    status: str = Field(default="generating")  # "generating" | "complete" | "partial" | "error"
    total_count: int = Field(default=0)
    completed_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class Blueprint(SQLModel, table=True):
    __tablename__ = "blueprints"

    id: int | None = Field(default=None, primary_key=True)
    suite_id: int = Field(foreign_key="blueprint_suites.id", index=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    type: str
    title: str
    content: str = Field(default="")
    status: str = Field(default="pending")  # "pending" | "generating" | "complete" | "failed"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
