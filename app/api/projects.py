from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.api.deps import get_current_user, get_project_or_404
from app.database import get_session
from app.models.blueprint import Blueprint, BlueprintSuite
from app.models.conversation import Conversation, ConversationMessage
from app.models.project import Project
from app.models.prompt import ImplementationPrompt, PromptSequence
from app.models.user import User

router = APIRouter(prefix="/projects", tags=["projects"])


class CreateProjectRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""


class UpdateProjectRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1)
    description: str | None = None


class ProjectResponse(BaseModel):
    id: int
    user_id: int
    title: str
    description: str
    created_at: datetime
    updated_at: datetime


def purge_project(session: Session, project: Project) -> None:
    """Delete a project and everything generated for it. Does not commit."""
    # Children first; rows are scoped to the owner as well as the project
    for model in (ImplementationPrompt, PromptSequence, Blueprint, BlueprintSuite):
        rows = session.exec(
            select(model).where(model.project_id == project.id, model.user_id == project.user_id)
        ).all()
        for row in rows:
            session.delete(row)

    conversations = session.exec(
        select(Conversation).where(
            Conversation.project_id == project.id, Conversation.user_id == project.user_id
        )
    ).all()
    for conversation in conversations:
        messages = session.exec(
            select(ConversationMessage).where(
                ConversationMessage.conversation_id == conversation.id
            )
        ).all()
        for message in messages:
            session.delete(message)
        session.delete(conversation)

    session.delete(project)


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return session.exec(
        select(Project).where(Project.user_id == user.id).order_by(Project.id)
    ).all()


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: CreateProjectRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = Project(
        user_id=user.id,
        title=body.title.strip(),
        description=body.description,
    )
    session.add(project)
    session.commit()
    session.refresh(project)
    return project


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    return get_project_or_404(project_id, user, session)


@router.put("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: int,
    body: UpdateProjectRequest,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, user, session)

    update_data = body.model_dump(exclude_unset=True, exclude_none=True)
    for key, value in update_data.items():
        setattr(project, key, value)
    project.updated_at = datetime.utcnow()

    session.add(project)
    session.commit()
    session.refresh(project)
    return project


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    project = get_project_or_404(project_id, user, session)

    purge_project(session, project)
    session.commit()
    return {"detail": "Project deleted"}
