import json

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine, select
from sqlmodel.pool import StaticPool

from app.api.deps import get_gateway
from app.auth import hash_password
from app.database import get_session
from app.main import app
from app.models.blueprint import Blueprint, BlueprintSuite
from app.models.conversation import Conversation
from app.models.user import User


class FakeGateway:
    """Scripted stand-in for the AI gateway.

    ``handler(system_prompt, user_prompt)`` returns the completion text or
    raises; every call is recorded in ``calls``.
    """

    def __init__(self):
        self.calls = []
        self.handler = lambda system_prompt, user_prompt: ""

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        return self.handler(system_prompt, user_prompt)

    async def stream_complete(self, system_prompt: str, user_prompt: str):
        text = await self.complete(system_prompt, user_prompt)
        for i in range(0, len(text), 16):
            yield text[i : i + 16]


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        # Seed admin user
        admin = User(
            email="admin@forge.local",
            password_hash=hash_password("admin"),
            role="admin",
        )
        session.add(admin)
        session.commit()
        yield session


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(name="client")
def client_fixture(session: Session, gateway: FakeGateway):
    def get_session_override():
        yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_gateway] = lambda: gateway
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_token(client: TestClient) -> str:
    response = client.post(
        "/api/auth/login",
        json={"email": "admin@forge.local", "password": "admin"},
    )
    return response.json()["access_token"]


@pytest.fixture
def user(session: Session) -> User:
    user = User(
        email="user@example.com",
        password_hash=hash_password("testpass"),
        role="user",
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@pytest.fixture
def user_token(client: TestClient, user: User) -> str:
    response = client.post(
        "/api/auth/login",
        json={"email": "user@example.com", "password": "testpass"},
    )
    return response.json()["access_token"]


@pytest.fixture
def auth(user_token: str) -> dict:
    return {"Authorization": f"Bearer {user_token}"}


@pytest.fixture
def project(client: TestClient, auth: dict) -> dict:
    resp = client.post(
        "/api/projects",
        json={"title": "Dog Walker", "description": "Marketplace for dog walkers"},
        headers=auth,
    )
    return resp.json()


@pytest.fixture
def ready_conversation(session: Session, project: dict) -> Conversation:
    """A finished interview for ``project``."""
    conversation = Conversation(
        project_id=project["id"],
        user_id=project["user_id"],
        initial_description="Marketplace for dog walkers",
        questions_asked=9,
        status="complete",
        is_ready_for_blueprints=True,
        project_type="saas",
        detected_features=json.dumps([]),
    )
    session.add(conversation)
    session.commit()
    session.refresh(conversation)
    return conversation


@pytest.fixture
def complete_suite(session: Session, ready_conversation: Conversation) -> BlueprintSuite:
    """A finished suite with a frontend and a backend document."""
    suite = BlueprintSuite(
        project_id=ready_conversation.project_id,
        user_id=ready_conversation.user_id,
        conversation_id=ready_conversation.id,
        status="complete",
        total_count=2,
        completed_count=2,
    )
    session.add(suite)
    session.commit()
    session.refresh(suite)
    for blueprint_type, title, content in (
        ("frontend", "Frontend Architecture PRD", "# Frontend\nFramework: SvelteKit\n"),
        ("backend", "Backend Architecture PRD", "# Backend\nREST endpoints\n"),
    ):
        session.add(
            Blueprint(
                suite_id=suite.id,
                project_id=suite.project_id,
                user_id=suite.user_id,
                type=blueprint_type,
                title=title,
                content=content,
                status="complete",
            )
        )
    session.commit()
    return suite


@pytest.fixture
def balance(session: Session):
    """Current balance of an account, read fresh from the database."""

    def read(email: str = "user@example.com") -> float:
        session.expire_all()
        user = session.exec(select(User).where(User.email == email)).first()
        return user.credit_units / 100

    return read
