"""
Modèles SQLAlchemy du fil d'actualité : publications, commentaires, likes.
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base


class PostType(str, enum.Enum):
    SCOLARITE = "SCOLARITE"
    ACTIVITE = "ACTIVITE"
    URGENT = "URGENT"
    GENERAL = "GENERAL"


class Post(Base):
    __tablename__ = "posts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    type = Column(String(20), nullable=False)  # SCOLARITE, ACTIVITE, URGENT, GENERAL
    is_pinned = Column(Boolean, nullable=False, default=False)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=True)  # NULL = toute l'école
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    author = relationship("User", lazy="joined")
    school_class = relationship("SchoolClass", lazy="joined")
    attachments = relationship(
        "Attachment", cascade="all, delete-orphan", order_by="Attachment.id"
    )
    comments = relationship(
        "Comment", cascade="all, delete-orphan", order_by="Comment.created_at"
    )
    likes = relationship("Like", cascade="all, delete-orphan")


class Comment(Base):
    """Commentaire d'une publication (ajout seul, pas d'édition)."""
    __tablename__ = "comments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    author = relationship("User", lazy="joined")


class Like(Base):
    """Présence de la ligne = publication aimée."""
    __tablename__ = "likes"

    post_id = Column(Integer, ForeignKey("posts.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
