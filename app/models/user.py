from datetime import datetime

from sqlmodel import Field, SQLModel

from app.config import settings


class User(SQLModel, table=True):
    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    password_hash: str
    role: str = Field(default="user")  # "admin" | "user"
    # Hundredths of a credit, so conditional decrements stay exact
    credit_units: int = Field(
        default_factory=lambda: round(settings.default_credits * 100)
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
