"""
Dépendances FastAPI d'authentification : jeton porteur (header ou cookie) → Actor.
"""

from typing import Optional

from fastapi import Depends, Request, UploadFile
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.exceptions import AuthenticationError, ForbiddenError, ValidationError
from app.models.user import Role
from app.services.attachment_service import IncomingFile
from app.services.identity_service import Actor, resolve_actor

TOKEN_COOKIE = "token"

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> Actor:
    """Header Authorization prioritaire, cookie HttpOnly en repli."""
    token = credentials.credentials if credentials else request.cookies.get(TOKEN_COOKIE)
    if not token:
        raise AuthenticationError("Jeton requis.")
    return resolve_actor(db, token)


def require_roles(*roles: Role):
    """Restreint une route à certains rôles."""
    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in roles:
            raise ForbiddenError("Permissions insuffisantes.")
        return actor
    return dependency


async def read_uploads(files: Optional[list[UploadFile]]) -> list[IncomingFile]:
    """Lit les fichiers multipart en mémoire ; les parts vides (sans nom) sont ignorées."""
    incoming = []
    for f in files or []:
        if not f.filename:
            continue
        # Taille annoncée par le parseur multipart : refus avant lecture
        if f.size is not None and f.size > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"Fichier trop volumineux : {f.filename} (maximum {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} Mo).",
                field="files",
            )
        incoming.append(IncomingFile(
            filename=f.filename,
            content_type=f.content_type or "application/octet-stream",
            data=await f.read(),
        ))
    return incoming
