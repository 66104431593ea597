"""
Primitives de sécurité : hachage des mots de passe et jetons d'accès JWT.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.config import settings
from app.exceptions import InvalidToken, TokenExpired


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Comparaison en temps constant assurée par werkzeug."""
    return check_password_hash(password_hash, password)


def create_access_token(
    user_id: int,
    role: str,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Émet un jeton signé portant l'identité (sub), le rôle et l'email."""
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(user_id), "role": role, "email": email, "exp": expire}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Vérifie la signature et l'expiration du jeton.
    Lève TokenExpired ou InvalidToken ; le payload n'est pas encore digne de confiance
    tant que l'utilisateur n'a pas été relu en base (voir identity_service).
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.InvalidTokenError:
        raise InvalidToken()

    sub = payload.get("sub")
    if sub is None or not str(sub).isdigit():
        raise InvalidToken()
    payload["sub"] = int(sub)
    return payload
