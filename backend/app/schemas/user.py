"""
Schémas Pydantic pour les utilisateurs et les classes.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, StrictBool, field_validator

from app.models.user import Role


class UserSummary(BaseModel):
    """Projection publique d'un utilisateur (auteur, expéditeur, participant)."""
    id: int
    first_name: str
    last_name: str
    role: Role

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: int
    email: str
    role: Role
    first_name: str
    last_name: str
    is_active: bool
    class_id: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    role: Role
    first_name: str
    last_name: str
    class_id: Optional[int] = None

    @field_validator("password")
    @classmethod
    def password_long_enough(cls, v: str) -> str:
        if len(v) < 8:
            raise ValueError("Le mot de passe doit contenir au moins 8 caractères.")
        return v

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip()


class UserActiveUpdate(BaseModel):
    is_active: StrictBool


class StudentSummary(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: str
    class_id: Optional[int] = None
    class_name: Optional[str] = None


class ClassSummary(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class ClassCreate(BaseModel):
    name: str

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Le nom de la classe ne peut pas être vide.")
        return v.strip()


class ClassResponse(BaseModel):
    id: int
    name: str
    nb_students: int
    nb_professors: int
    created_at: datetime


class ProfessorClassesAssign(BaseModel):
    """Corps de requête pour assigner des classes à un professeur."""
    class_ids: list[int]

    @field_validator("class_ids")
    @classmethod
    def not_empty(cls, v: list[int]) -> list[int]:
        if not v:
            raise ValueError("La liste de classes ne peut pas être vide.")
        return v


class ParentStudentLink(BaseModel):
    student_id: int
