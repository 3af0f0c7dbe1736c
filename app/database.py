import logging
from collections.abc import Generator

from sqlmodel import Session, SQLModel, create_engine

from app.config import settings

logger = logging.getLogger(__name__)

# Concurrent credit deductions queue on SQLite's write lock instead of failing
_connect_args = (
    {"check_same_thread": False, "timeout": 30}
    if settings.database_url.startswith("sqlite")
    else {}
)
engine = create_engine(settings.database_url, echo=False, connect_args=_connect_args)


def init_db() -> None:
    import app.models  # noqa: F401 (registers every table with SQLModel metadata)

    SQLModel.metadata.create_all(engine)
    logger.info(f"Database ready at {engine.url.render_as_string(hide_password=True)}")


def get_session() -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session
