import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlmodel import Session, select

from app.api.auth import router as auth_router
from app.api.blueprints import router as blueprints_router
from app.api.interrogation import router as interrogation_router
from app.api.projects import router as projects_router
from app.api.prompts import router as prompts_router
from app.api.users import router as users_router
from app.auth import hash_password
from app.config import settings
from app.database import engine, init_db
from app.errors import ForgeError
from app.models.user import User
from app.services.ai_gateway import AIGateway

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    with Session(engine) as session:
        admin = session.exec(select(User).where(User.email == settings.admin_email)).first()
        if not admin:
            admin = User(
                email=settings.admin_email,
                password_hash=hash_password(settings.admin_password),
                role="admin",
            )
            session.add(admin)
            session.commit()
            logger.info(f"Seeded admin account {settings.admin_email}")

    app.state.gateway = AIGateway.from_settings(settings)
    if not app.state.gateway.clients:
        logger.warning("No AI credentials configured; generation requests will fail")
    yield


app = FastAPI(title="Blueprint Forge", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ForgeError)
async def forge_error_handler(request: Request, exc: ForgeError):
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(projects_router, prefix="/api")
app.include_router(interrogation_router, prefix="/api")
app.include_router(blueprints_router, prefix="/api")
app.include_router(prompts_router, prefix="/api")


@app.get("/health")
async def health():
    return {"status": "ok"}
