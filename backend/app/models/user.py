"""
Modèle SQLAlchemy pour les utilisateurs (direction, professeurs, parents, élèves).
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String

from app.database import Base


class Role(str, enum.Enum):
    DIRECTION = "DIRECTION"
    PROFESSOR = "PROFESSOR"
    PARENT = "PARENT"
    STUDENT = "STUDENT"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)  # DIRECTION, PROFESSOR, PARENT, STUDENT
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    # Renseigné uniquement pour les élèves
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
