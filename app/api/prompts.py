from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_gateway, get_project_or_404
from app.database import get_session
from app.errors import InvalidInputError, NotFoundError
from app.models.prompt import ImplementationPrompt, PromptSequence
from app.models.user import User
from app.services.ai_gateway import AIGateway
from app.services.blueprints import get_suite
from app.services.credits import ledger
from app.services.sequencer import (
    PromptSequencer,
    get_sequence,
    json_list,
    list_prompts,
    update_prompt_status,
)

router = APIRouter(tags=["prompts"])


class GenerateSequenceRequest(BaseModel):
    skip_categories: list[str] = Field(default_factory=list)
    tech_stack: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str


class PromptResponse(BaseModel):
    id: int
    sequence: int
    category: str
    title: str
    content: str
    prerequisites: list[str]
    user_actions: list[str]
    acceptance_criteria: list[str]
    estimated_time: str
    status: str
    completed_at: datetime | None
    updated_at: datetime


class SequenceResponse(BaseModel):
    id: int
    project_id: int
    suite_id: int
    status: str
    tech_stack: str
    total_prompts: int
    completed_prompts: int
    current_prompt_index: int
    prompts: list[PromptResponse]


class GenerateSequenceResponse(BaseModel):
    sequence: SequenceResponse
    is_existing: bool
    remaining_credits: float


class UpdateStatusResponse(BaseModel):
    prompt: PromptResponse
    sequence_status: str | None
    completed_prompts: int | None
    total_prompts: int | None


class RegenerateResponse(BaseModel):
    prompt: PromptResponse
    remaining_credits: float


def _prompt_response(prompt: ImplementationPrompt) -> PromptResponse:
    return PromptResponse(
        id=prompt.id,
        sequence=prompt.sequence,
        category=prompt.category,
        title=prompt.title,
        content=prompt.content,
        prerequisites=json_list(prompt.prerequisites),
        user_actions=json_list(prompt.user_actions),
        acceptance_criteria=json_list(prompt.acceptance_criteria),
        estimated_time=prompt.estimated_time,
        status=prompt.status,
        completed_at=prompt.completed_at,
        updated_at=prompt.updated_at,
    )


def _sequence_response(session: Session, sequence: PromptSequence) -> SequenceResponse:
    return SequenceResponse(
        id=sequence.id,
        project_id=sequence.project_id,
        suite_id=sequence.suite_id,
        status=sequence.status,
        tech_stack=sequence.tech_stack,
        total_prompts=sequence.total_prompts,
        completed_prompts=sequence.completed_prompts,
        current_prompt_index=sequence.current_prompt_index,
        prompts=[
            _prompt_response(p)
            for p in list_prompts(session, sequence.project_id, sequence.user_id)
        ],
    )


def _get_prompt_or_404(prompt_id: int, user: User, session: Session) -> ImplementationPrompt:
    prompt = session.exec(
        select(ImplementationPrompt).where(
            ImplementationPrompt.id == prompt_id, ImplementationPrompt.user_id == user.id
        )
    ).first()
    if not prompt:
        raise NotFoundError("Prompt not found")
    return prompt


@router.post(
    "/projects/{project_id}/prompts/generate",
    response_model=GenerateSequenceResponse,
)
async def generate_prompts(
    project_id: int,
    body: GenerateSequenceRequest | None = None,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_gateway),
):
    body = body or GenerateSequenceRequest()
    project = get_project_or_404(project_id, user, session)
    suite = get_suite(session, project.id, user.id)
    if suite is None:
        raise InvalidInputError("Generate blueprints before generating prompts")

    sequence, is_existing = await PromptSequencer(gateway).generate(
        session, project, suite, body.skip_categories, body.tech_stack
    )
    return GenerateSequenceResponse(
        sequence=_sequence_response(session, sequence),
        is_existing=is_existing,
        remaining_credits=ledger.get_balance(session, user.id),
    )


@router.get("/projects/{project_id}/prompts", response_model=SequenceResponse)
async def get_project_prompts(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, user, session)
    sequence = get_sequence(session, project.id, user.id)
    if sequence is None:
        raise NotFoundError("Prompt sequence not found")
    return _sequence_response(session, sequence)


@router.patch("/prompts/{prompt_id}/status", response_model=UpdateStatusResponse)
async def update_status(
    prompt_id: int,
    body: UpdateStatusRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    prompt = _get_prompt_or_404(prompt_id, user, session)
    sequence = update_prompt_status(session, prompt, body.status)
    return UpdateStatusResponse(
        prompt=_prompt_response(prompt),
        sequence_status=sequence.status if sequence else None,
        completed_prompts=sequence.completed_prompts if sequence else None,
        total_prompts=sequence.total_prompts if sequence else None,
    )


@router.post("/prompts/{prompt_id}/regenerate", response_model=RegenerateResponse)
async def regenerate_prompt(
    prompt_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_gateway),
):
    prompt = _get_prompt_or_404(prompt_id, user, session)
    project = get_project_or_404(prompt.project_id, user, session)
    remaining = await PromptSequencer(gateway).regenerate(session, prompt, project)
    return RegenerateResponse(prompt=_prompt_response(prompt), remaining_credits=remaining)
