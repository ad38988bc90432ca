import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..agent import CoachAgent
from ..config import Settings, get_settings
from ..database.db_manager import DBManager
from ..services.photo_storage import PhotoStorage
from ..utils import isoformat_utc, utc_now
from .routers import activities, chat, nutrition, upload

logger = logging.getLogger("ava_coach.api")


def create_app(
    settings: Optional[Settings] = None,
    agent: Optional[CoachAgent] = None,
    db: Optional[DBManager] = None,
    storage: Optional[PhotoStorage] = None,
) -> FastAPI:
    """Build the API. Collaborators can be injected; the rest come from settings."""
    settings = settings or get_settings()

    if db is None:
        db = DBManager(settings.database.url, echo=settings.database.echo)
    db.init_db()

    if agent is None and settings.llm.api_key:
        agent = CoachAgent.from_settings(settings, session_factory=db.get_session)
    elif agent is None:
        logger.warning("OPENAI_API_KEY is not set; chat routes will answer 503")

    if storage is None:
        storage = PhotoStorage(settings.server.upload_dir, settings.server.public_base_url)

    app = FastAPI(title="Ava Coach API", debug=settings.debug)
    app.state.settings = settings
    app.state.db = db
    app.state.agent = agent
    app.state.storage = storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
        )

    @app.get("/")
    def health():
        return {"status": "Ninety API is running!", "timestamp": isoformat_utc(utc_now())}

    app.include_router(chat.router)
    app.include_router(nutrition.router)
    app.include_router(activities.router)
    app.include_router(upload.router)
    app.mount("/uploads", StaticFiles(directory=storage.upload_dir), name="uploads")

    logger.info(
        "API ready: model=%s, database=%s, uploads=%s",
        settings.llm.model,
        settings.database.url,
        storage.upload_dir,
    )
    return app
