"""
Modèles SQLAlchemy pour les classes et les liens professeur ↔ classe, parent ↔ élève.
Nommé school_class pour éviter le conflit avec le mot-clé Python 'class'.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from app.database import Base


class SchoolClass(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)


class ProfessorClass(Base):
    """Classes enseignées par un professeur."""
    __tablename__ = "professor_classes"

    professor_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), primary_key=True)


class ParentStudent(Base):
    """Lien de responsabilité parent ↔ élève."""
    __tablename__ = "parent_students"

    parent_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    student_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
