"""
Router de la messagerie.
"""

from typing import List

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_actor, read_uploads
from app.schemas.thread import (
    MarkReadResponse,
    MessageResponse,
    ThreadCreate,
    ThreadDetail,
    ThreadSummary,
    UnreadCountResponse,
)
from app.services import thread_service
from app.services.identity_service import Actor
from app.storage import ObjectStore, get_object_store

router = APIRouter(prefix="/api/threads", tags=["Messagerie"])


@router.get("/unread", response_model=UnreadCountResponse, summary="Compteur de messages non lus")
def get_unread_count(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return thread_service.get_unread_count(db, actor)


@router.get("", response_model=List[ThreadSummary], summary="Mes fils de discussion")
def get_threads(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Fils dont l'utilisateur est participant, avec aperçu du dernier message et non-lus."""
    return thread_service.get_threads(db, actor)


@router.get("/{thread_id}", response_model=ThreadDetail, summary="Transcript d'un fil")
def get_thread(thread_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return thread_service.get_thread(db, actor, thread_id)


@router.post("", response_model=ThreadDetail, status_code=201, summary="Ouvrir un fil")
def create_thread(data: ThreadCreate, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """
    Ouvre un fil à propos d'un élève avec un destinataire (id explicite ou rôle).
    Si un fil existe déjà pour cet élève et ces deux personnes, il est retourné avec un code 200.
    """
    thread, created = thread_service.create_thread(db, actor, data)
    if not created:
        return JSONResponse(status_code=200, content=thread.model_dump(mode="json"))
    return thread


@router.post("/{thread_id}/messages", response_model=MessageResponse, status_code=201, summary="Envoyer un message")
async def add_message(
    thread_id: int,
    content: str = Form(...),
    files: List[UploadFile] = File(default=[]),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
):
    incoming = await read_uploads(files)
    return thread_service.add_message(db, actor, thread_id, content, incoming, store)


@router.post("/{thread_id}/read", response_model=MarkReadResponse, summary="Marquer comme lu")
def mark_as_read(thread_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return thread_service.mark_as_read(db, actor, thread_id)
