from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlmodel import Session

from app.auth import ACCESS, read_token
from app.database import get_session
from app.errors import NotFoundError
from app.models.project import Project
from app.models.user import User
from app.services.ai_gateway import AIGateway

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: Session = Depends(get_session),
) -> User:
    try:
        user_id = read_token(credentials.credentials, ACCESS)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    if user.role != "admin":
        raise HTTPException(status_code=403, detail="Admin required")
    return user


def get_gateway(request: Request) -> AIGateway:
    return request.app.state.gateway


def get_project_or_404(project_id: int, user: User, session: Session) -> Project:
    project = session.get(Project, project_id)
    if not project or project.user_id != user.id:
        raise NotFoundError("Project not found")
    return project
