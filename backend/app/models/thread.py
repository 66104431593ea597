"""
Modèles SQLAlchemy de la messagerie : fils, participants, messages, accusés de lecture.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from app.database import Base


class MessageThread(Base):
    __tablename__ = "message_threads"
    __table_args__ = (
        # Un seul fil par (élève, paire de participants)
        UniqueConstraint("student_id", "participant_key", name="uq_message_threads_student_pair"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    participant_key = Column(String(50), nullable=False)  # "min_id:max_id"
    last_message_at = Column(DateTime, nullable=False, default=datetime.now)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    student = relationship("User", lazy="joined")
    participants = relationship(
        "ThreadParticipant", cascade="all, delete-orphan", lazy="selectin"
    )
    messages = relationship(
        "Message",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )
    reads = relationship("ThreadRead", cascade="all, delete-orphan")

    @property
    def participant_ids(self) -> set[int]:
        return {p.user_id for p in self.participants}


class ThreadParticipant(Base):
    __tablename__ = "thread_participants"

    thread_id = Column(Integer, ForeignKey("message_threads.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    user = relationship("User", lazy="joined")


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(Integer, ForeignKey("message_threads.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    sender = relationship("User", lazy="joined")
    attachments = relationship(
        "Attachment", cascade="all, delete-orphan", order_by="Attachment.id"
    )


class ThreadRead(Base):
    """Filigrane de lecture : absence = jamais lu (équivaut à thread.created_at)."""
    __tablename__ = "thread_reads"

    thread_id = Column(Integer, ForeignKey("message_threads.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    last_read_at = Column(DateTime, nullable=False, default=datetime.now)
