from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Conversation(SQLModel, table=True):
    __tablename__ = "conversations"
    __table_args__ = (UniqueConstraint("project_id", "user_id"),)

    id: int | None = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    initial_description: str
    questions_asked: int = Field(default=0)
    status: str = Field(default="active")  # "active" | "complete"
    is_ready_for_blueprints: bool = Field(default=False)
    project_type: str | None = Field(default=None)
    detected_features: str = Field(default="[]")  # JSON
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ConversationMessage(SQLModel, table=True):
    __tablename__ = "conversation_messages"
    __table_args__ = (UniqueConstraint("conversation_id", "position"),)

    id: int | None = Field(default=None, primary_key=True)
    conversation_id: int = Field(foreign_key="conversations.id", index=True)
    position: int
    role: str  # "user" | "assistant"
    content: str = Field(default="")
    category: str | None = Field(default=None)  # "users" | "problem" | "technical" | "scope"
    created_at: datetime = Field(default_factory=datetime.utcnow)
