"""
Schémas Pydantic de la messagerie.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from app.schemas.post import AttachmentResponse
from app.schemas.user import UserSummary


class ThreadCreate(BaseModel):
    """recipient_user_id prime sur recipient_role lorsqu'il est fourni."""
    student_id: int
    recipient_role: Optional[str] = None
    recipient_user_id: Optional[int] = None


class StudentRef(BaseModel):
    id: int
    first_name: str
    last_name: str

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: int
    thread_id: int
    content: str
    created_at: datetime
    sender: UserSummary
    attachments: list[AttachmentResponse] = []

    model_config = {"from_attributes": True}


class ThreadSummary(BaseModel):
    """Entrée de la boîte de réception : aperçu du dernier message et compteur de non-lus."""
    id: int
    student: Optional[StudentRef]
    participants: list[UserSummary]
    last_message_at: datetime
    created_at: datetime
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0


class ThreadDetail(BaseModel):
    id: int
    student: Optional[StudentRef]
    participants: list[UserSummary]
    last_message_at: datetime
    created_at: datetime
    messages: list[MessageResponse]


class UnreadCountResponse(BaseModel):
    total: int
    threads: dict[int, int]


class MarkReadResponse(BaseModel):
    success: bool
    thread_id: int
    last_read_at: datetime
