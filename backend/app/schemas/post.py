"""
Schémas Pydantic du fil d'actualité.
Les types et contenus sont validés par post_service (erreurs 400), pas ici.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from app.schemas.user import ClassSummary, UserSummary


class PostCreate(BaseModel):
    content: str
    type: str
    is_pinned: bool = False
    class_id: Optional[int] = None


class PostUpdate(BaseModel):
    """Mise à jour partielle : seuls les champs fournis changent (class_id peut valoir null)."""
    content: str
    type: Optional[str] = None
    class_id: Optional[int] = None


class PinUpdate(BaseModel):
    is_pinned: Any = None


class CommentCreate(BaseModel):
    content: str


class AttachmentResponse(BaseModel):
    id: int
    url: str
    filename: str
    mime_type: str
    size: int

    model_config = {"from_attributes": True}


class CommentResponse(BaseModel):
    id: int
    post_id: int
    content: str
    created_at: datetime
    author: UserSummary

    model_config = {"from_attributes": True}


class PostResponse(BaseModel):
    id: int
    content: str
    type: str
    is_pinned: bool
    class_id: Optional[int]
    created_at: datetime
    author: UserSummary
    school_class: Optional[ClassSummary] = None
    attachments: list[AttachmentResponse] = []
    comments: list[CommentResponse] = []
    likes_count: int = 0
    liked_by_me: bool = False


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool


class PostListResponse(BaseModel):
    posts: list[PostResponse]
    pagination: Pagination


class LikeToggleResponse(BaseModel):
    liked: bool
    likes_count: int
