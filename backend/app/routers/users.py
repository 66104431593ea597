"""
Router des utilisateurs.
Vues personnelles (/me/...) pour tout utilisateur connecté, administration réservée à la direction.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_current_actor, require_roles
from app.models.user import Role
from app.schemas.user import (
    ClassSummary,
    ParentStudentLink,
    ProfessorClassesAssign,
    StudentSummary,
    UserActiveUpdate,
    UserCreate,
    UserResponse,
)
from app.services import class_service, user_service
from app.services.identity_service import Actor

router = APIRouter(prefix="/api/users", tags=["Utilisateurs"])

direction_only = require_roles(Role.DIRECTION)


@router.get("/me", response_model=UserResponse, summary="Mon profil")
def get_me(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return user_service.get_user(db, actor.id)


@router.get("/me/students", response_model=List[StudentSummary], summary="Mes élèves")
def get_my_students(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Enfants (parent), élèves des classes (professeur) ou tous les élèves actifs (direction)."""
    return user_service.get_my_students(db, actor)


@router.get("/me/classes", response_model=List[ClassSummary], summary="Mes classes")
def get_my_classes(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return class_service.get_my_classes(db, actor)


# --- Administration (direction) ---

@router.post("", response_model=UserResponse, status_code=201, summary="Créer un utilisateur")
def create_user(data: UserCreate, actor: Actor = Depends(direction_only), db: Session = Depends(get_db)):
    return user_service.create_user(db, data)


@router.get("", response_model=List[UserResponse], summary="Lister les utilisateurs")
def list_users(actor: Actor = Depends(direction_only), db: Session = Depends(get_db)):
    return user_service.list_users(db)


@router.patch("/{user_id}", response_model=UserResponse, summary="Activer / désactiver un compte")
def update_user(
    user_id: int,
    data: UserActiveUpdate,
    actor: Actor = Depends(direction_only),
    db: Session = Depends(get_db),
):
    return user_service.set_user_active(db, actor, user_id, data.is_active)


@router.post("/{parent_id}/students", status_code=201, summary="Lier un parent à un élève")
def link_student(
    parent_id: int,
    data: ParentStudentLink,
    actor: Actor = Depends(direction_only),
    db: Session = Depends(get_db),
):
    created = user_service.link_parent_student(db, parent_id, data.student_id)
    return {"parent_id": parent_id, "student_id": data.student_id, "created": created}


@router.post("/{professor_id}/classes", response_model=List[ClassSummary], summary="Affecter des classes")
def assign_classes(
    professor_id: int,
    data: ProfessorClassesAssign,
    actor: Actor = Depends(direction_only),
    db: Session = Depends(get_db),
):
    """Affecte une ou plusieurs classes à un professeur. Les doublons sont ignorés."""
    return class_service.assign_professor_classes(db, professor_id, data)
