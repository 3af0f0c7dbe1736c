from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_gateway, get_project_or_404
from app.database import get_session
from app.errors import InvalidInputError, NotFoundError
from app.models.blueprint import BlueprintSuite
from app.models.conversation import Conversation
from app.models.user import User
from app.services.ai_gateway import AIGateway
from app.services.blueprints import BlueprintGenerator, get_suite, suite_blueprints
from app.services.credits import ledger

router = APIRouter(tags=["blueprints"])


class BlueprintResponse(BaseModel):
    id: int
    type: str
    title: str
    content: str | None
    status: str
    updated_at: datetime


class SuiteResponse(BaseModel):
    id: int
    project_id: int
    status: str
    total_count: int
    completed_count: int
    blueprints: list[BlueprintResponse]
    created_at: datetime
    updated_at: datetime


class GenerateSuiteResponse(BaseModel):
    suite: SuiteResponse
    is_existing: bool
    remaining_credits: float


def _suite_response(session: Session, suite: BlueprintSuite) -> SuiteResponse:
    return SuiteResponse(
        id=suite.id,
        project_id=suite.project_id,
        status=suite.status,
        total_count=suite.total_count,
        completed_count=suite.completed_count,
        blueprints=[
            BlueprintResponse(
                id=b.id,
                type=b.type,
                title=b.title,
                content=b.content,
                status=b.status,
                updated_at=b.updated_at,
            )
            for b in suite_blueprints(session, suite)
        ],
        created_at=suite.created_at,
        updated_at=suite.updated_at,
    )


@router.post(
    "/projects/{project_id}/blueprints/generate",
    response_model=GenerateSuiteResponse,
)
async def generate_blueprints(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_gateway),
):
    project = get_project_or_404(project_id, user, session)
    conversation = session.exec(
        select(Conversation).where(
            Conversation.project_id == project.id,
            Conversation.user_id == user.id,
        )
    ).first()
    if conversation is None:
        raise InvalidInputError("Complete the interview before generating blueprints")

    suite, is_existing = await BlueprintGenerator(gateway).generate(session, conversation)
    return GenerateSuiteResponse(
        suite=_suite_response(session, suite),
        is_existing=is_existing,
        remaining_credits=ledger.get_balance(session, user.id),
    )


@router.get("/projects/{project_id}/blueprints", response_model=SuiteResponse)
async def get_project_blueprints(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, user, session)
    suite = get_suite(session, project.id, user.id)
    if suite is None:
        raise NotFoundError("Blueprint suite not found")
    return _suite_response(session, suite)


@router.get("/blueprint-suites/{suite_id}", response_model=SuiteResponse)
async def get_blueprint_suite(
    suite_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    suite = session.exec(
        select(BlueprintSuite).where(BlueprintSuite.id == suite_id, BlueprintSuite.user_id == user.id)
    ).first()
    if not suite:
        raise NotFoundError("Blueprint suite not found")
    return _suite_response(session, suite)
