"""
Router d'authentification : connexion, profil courant, déconnexion.
"""

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.dependencies import TOKEN_COOKIE, get_current_actor
from app.exceptions import InactiveAccount
from app.schemas.auth import LoginRequest, LoginResponse
from app.schemas.user import UserResponse
from app.services import identity_service, user_service
from app.services.identity_service import Actor

router = APIRouter(prefix="/api/auth", tags=["Authentification"])


@router.post("/login", response_model=LoginResponse, summary="Se connecter")
def login(data: LoginRequest, response: Response, db: Session = Depends(get_db)):
    """
    Vérifie les identifiants et retourne un jeton d'accès.
    Le jeton est aussi posé dans un cookie HttpOnly pour le front-end web.
    """
    try:
        user, token = identity_service.authenticate(db, data.email, data.password)
    except InactiveAccount as e:
        raise HTTPException(status_code=403, detail=e.message)

    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        secure=settings.ENV == "production",
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return LoginResponse(access_token=token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse, summary="Utilisateur connecté")
def me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return user_service.get_user(db, actor.id)


@router.post("/logout", summary="Se déconnecter")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE, httponly=True, samesite="lax")
    return {"message": "Déconnexion réussie."}
