import json
import logging
from collections.abc import AsyncGenerator
from dataclasses import asdict
from datetime import datetime

import openai
from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_gateway, get_project_or_404
from app.database import get_session
from app.errors import ForgeError, InvalidInputError, NotFoundError
from app.models.conversation import Conversation
from app.models.user import User
from app.services.ai_gateway import AIGateway
from app.services.credits import ledger
from app.services.interrogation import (
    InterrogationEngine,
    detected_features,
    load_messages,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["interrogation"])


class InterrogationRequest(BaseModel):
    initial_description: str | None = None
    message: str | None = None


class InterrogationResponse(BaseModel):
    conversation_id: int
    question: str
    category: str
    is_complete: bool
    completion_reason: str | None
    questions_asked: int
    remaining_credits: float


class MessageResponse(BaseModel):
    role: str
    content: str
    category: str | None
    created_at: datetime


class ConversationResponse(BaseModel):
    id: int
    project_id: int
    initial_description: str
    status: str
    questions_asked: int
    is_ready_for_blueprints: bool
    project_type: str | None
    detected_features: list[str]
    messages: list[MessageResponse]


def _find_conversation(session: Session, project_id: int, user_id: int) -> Conversation | None:
    return session.exec(
        select(Conversation).where(
            Conversation.project_id == project_id,
            Conversation.user_id == user_id,
        )
    ).first()


def _prepare(
    engine: InterrogationEngine,
    session: Session,
    project_id: int,
    user: User,
    body: InterrogationRequest,
) -> Conversation:
    """Start the conversation or take the user's next answer, charging for it."""
    project = get_project_or_404(project_id, user, session)
    conversation = _find_conversation(session, project.id, user.id)
    if conversation is None:
        return engine.start_conversation(
            session, project.id, user.id, body.initial_description or project.description
        )
    if conversation.status == "complete" and body.message:
        raise InvalidInputError("Interview is already complete")
    engine.accept_user_message(session, conversation, body.message)
    return conversation


def _sse(payload: dict) -> str:
    return f"data: {json.dumps(payload, default=str)}\n\n"


@router.post(
    "/projects/{project_id}/interrogation", response_model=InterrogationResponse
)
async def interrogate(
    project_id: int,
    body: InterrogationRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_gateway),
):
    engine = InterrogationEngine(gateway)
    conversation = _prepare(engine, session, project_id, user, body)
    result = await engine.ask_next(session, conversation)
    return InterrogationResponse(
        conversation_id=conversation.id,
        question=result.question,
        category=result.category,
        is_complete=result.is_complete,
        completion_reason=result.completion_reason,
        questions_asked=result.questions_asked,
        remaining_credits=ledger.get_balance(session, user.id),
    )


@router.post("/projects/{project_id}/interrogation/stream")
async def interrogate_stream(
    project_id: int,
    body: InterrogationRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
    gateway: AIGateway = Depends(get_gateway),
) -> StreamingResponse:
    """Stream the next question as Server-Sent Events.

    Event types: ``start``, ``chunk`` (raw model text), ``done`` (the recorded
    question) and ``error``. Credit and ownership failures are returned as
    plain JSON errors before the stream opens.
    """
    engine = InterrogationEngine(gateway)
    conversation = _prepare(engine, session, project_id, user, body)
    conversation_id = conversation.id

    async def generate() -> AsyncGenerator[str, None]:
        session.add(conversation)
        yield _sse({"type": "start", "conversation_id": conversation_id})

        parts = []
        try:
            async for fragment in engine.ask_next_stream(session, conversation):
                parts.append(fragment)
                yield _sse({"type": "chunk", "content": fragment})
        except ForgeError as e:
            yield _sse({"type": "error", **e.payload()})
            return
        except openai.APIError as e:
            logger.error(f"Interrogation stream for conversation {conversation_id} broke: {e}")
            yield _sse(
                {"type": "error", "error": "provider_exhausted", "detail": "AI stream interrupted"}
            )
            return

        result = engine.record_reply(session, conversation, "".join(parts))
        yield _sse(
            {
                "type": "done",
                "conversation_id": conversation_id,
                **asdict(result),
                "remaining_credits": ledger.get_balance(session, user.id),
            }
        )

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get(
    "/projects/{project_id}/conversation", response_model=ConversationResponse
)
async def get_conversation(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, user, session)
    conversation = _find_conversation(session, project.id, user.id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return ConversationResponse(
        id=conversation.id,
        project_id=conversation.project_id,
        initial_description=conversation.initial_description,
        status=conversation.status,
        questions_asked=conversation.questions_asked,
        is_ready_for_blueprints=conversation.is_ready_for_blueprints,
        project_type=conversation.project_type,
        detected_features=detected_features(conversation),
        messages=[
            MessageResponse(
                role=m.role, content=m.content, category=m.category, created_at=m.created_at
            )
            for m in load_messages(session, conversation)
        ],
    )
