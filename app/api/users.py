from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from app.api.deps import get_admin_user, get_current_user
from app.api.projects import purge_project
from app.auth import hash_password
from app.database import get_session
from app.errors import NotFoundError
from app.models.project import Project
from app.models.user import User
from app.services.credits import from_units, ledger

router = APIRouter(prefix="/users", tags=["users"])


class CreateUserRequest(BaseModel):
    email: str
    password: str
    role: str | None = None


class GrantCreditsRequest(BaseModel):
    amount: float = Field(gt=0)


class UserResponse(BaseModel):
    id: int
    email: str
    role: str
    credits: float
    created_at: datetime


class BalanceResponse(BaseModel):
    user_id: int
    credits: float


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        role=user.role,
        credits=from_units(user.credit_units),
        created_at=user.created_at,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(user: User = Depends(get_current_user)):
    return _to_response(user)


@router.get("", response_model=list[UserResponse])
async def list_users(
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    return [_to_response(u) for u in session.exec(select(User)).all()]


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    body: CreateUserRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    email = body.email.strip().lower()
    existing = session.exec(select(User).where(User.email == email)).first()
    if existing:
        raise HTTPException(status_code=409, detail="Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(body.password),
        **({"role": body.role} if body.role else {}),
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return _to_response(user)


@router.post("/{user_id}/credits", response_model=BalanceResponse)
async def grant_credits(
    user_id: int,
    body: GrantCreditsRequest,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    balance = ledger.grant(session, user_id, body.amount)
    return BalanceResponse(user_id=user_id, credits=balance)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    session: Session = Depends(get_session),
    _admin: User = Depends(get_admin_user),
):
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    projects = session.exec(select(Project).where(Project.user_id == user.id)).all()
    for project in projects:
        purge_project(session, project)
    session.delete(user)
    session.commit()
    return {"detail": "User deleted"}
