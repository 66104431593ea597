"""
Point d'entrée principal de l'API Mon École.
Démarrage : uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

# Enregistre tous les modèles dans Base.metadata avant les routers
import app.models  # noqa: F401
from app.config import settings
from app.exceptions import DomainError, ValidationError
from app.routers import auth, classes, posts, threads, users

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cycle de vie de l'application : prépare le dossier des pièces jointes."""
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info("API Mon École démarrée (%s), CORS autorisé : %s", settings.ENV, settings.CLIENT_URL)
    yield
    logger.info("API Mon École arrêtée.")


app = FastAPI(
    title="Mon École API",
    description="Fil d'actualité modéré et messagerie parents / professeurs / direction",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# CORS : front-end unique, cookies autorisés pour le jeton HttpOnly
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "Accept"],
)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(classes.router)
app.include_router(posts.router)
app.include_router(threads.router)

app.mount(
    settings.UPLOAD_BASE_URL,
    StaticFiles(directory=settings.UPLOAD_DIR, check_dir=False),
    name="uploads",
)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Traduit les erreurs métier en réponse HTTP (400, 401, 403, 404, 409, 500)."""
    content = {"detail": exc.message}
    if isinstance(exc, ValidationError) and exc.field:
        content["field"] = exc.field

    if exc.status_code >= 500:
        logger.error("Erreur %s sur %s : %s", type(exc).__name__, request.url.path, exc, exc_info=True)
    elif exc.status_code == 403:
        logger.warning("Accès refusé sur %s %s", request.method, request.url.path)

    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Intercepte toutes les exceptions non gérées pour garantir que la réponse 500
    passe bien par CORSMiddleware et ne divulgue aucun détail interne.
    """
    logger.error("Exception non gérée : %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Une erreur interne est survenue."},
    )


@app.get("/api/health", tags=["Santé"])
def health_check():
    """Vérifie que l'API est opérationnelle."""
    return {"status": "ok", "service": "Mon École API", "version": "0.1.0"}
