"""
Router du fil d'actualité : publications, épinglage, commentaires, likes.
Toutes les routes exigent un utilisateur connecté ; les règles de rôle sont
appliquées par post_service.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_actor, read_uploads
from app.schemas.post import (
    CommentCreate,
    CommentResponse,
    LikeToggleResponse,
    PinUpdate,
    PostCreate,
    PostListResponse,
    PostResponse,
    PostUpdate,
)
from app.services import post_service
from app.services.identity_service import Actor
from app.services.visibility import parse_class_filter
from app.storage import ObjectStore, get_object_store

router = APIRouter(prefix="/api/posts", tags=["Publications"])


@router.get("", response_model=PostListResponse, summary="Fil d'actualité paginé")
def list_posts(
    class_id: Optional[str] = Query(None, description="Identifiant de classe ou 'all'"),
    page: int = Query(1),
    limit: int = Query(post_service.DEFAULT_PAGE_SIZE),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """
    Publications visibles par l'utilisateur, épinglées d'abord puis les plus récentes.
    Le filtre de classe ne s'applique qu'au personnel (direction, professeurs).
    """
    return post_service.list_posts(db, actor, parse_class_filter(class_id), page, limit)


@router.get("/pinned", response_model=List[PostResponse], summary="Publications épinglées")
def list_pinned(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return post_service.list_pinned_posts(db, actor)


@router.get("/{post_id}", response_model=PostResponse, summary="Détail d'une publication")
def get_post(post_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return post_service.get_post(db, actor, post_id)


@router.post("", response_model=PostResponse, status_code=201, summary="Publier")
async def create_post(
    content: str = Form(...),
    type: str = Form(...),
    is_pinned: bool = Form(False),
    class_id: Optional[int] = Form(None),
    files: List[UploadFile] = File(default=[]),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    """
    Crée une publication (multipart) avec jusqu'à 5 pièces jointes (images ou PDF, 5 Mo max).
    Les parents ne peuvent pas publier.
    """
    incoming = await read_uploads(files)
    data = PostCreate(content=content, type=type, is_pinned=is_pinned, class_id=class_id)
    return post_service.create_post(db, actor, data, incoming, store)


@router.put("/{post_id}", response_model=PostResponse, summary="Modifier une publication")
def update_post(
    post_id: int,
    data: PostUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Réservé à l'auteur et à la direction. class_id peut être remis à null."""
    return post_service.update_post(db, actor, post_id, data)


@router.delete("/{post_id}", status_code=204, summary="Supprimer une publication")
def delete_post(post_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    post_service.delete_post(db, actor, post_id)


@router.patch("/{post_id}/pin", response_model=PostResponse, summary="Épingler / désépingler")
def toggle_pin(
    post_id: int,
    data: PinUpdate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return post_service.toggle_pin(db, actor, post_id, data.is_pinned)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=201, summary="Commenter")
def create_comment(
    post_id: int,
    data: CommentCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    return post_service.create_comment(db, actor, post_id, data.content)


@router.post("/{post_id}/like", response_model=LikeToggleResponse, summary="Aimer / ne plus aimer")
def toggle_like(post_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return post_service.toggle_like(db, actor, post_id)
