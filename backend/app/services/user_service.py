"""
Service métier pour les comptes utilisateurs (administration par la direction)
et les vues "mes élèves".
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.school_class import ParentStudent, SchoolClass
from app.models.user import Role, User
from app.schemas.user import StudentSummary, UserCreate, UserResponse
from app.security import hash_password
from app.services.identity_service import Actor

logger = logging.getLogger(__name__)


def create_user(db: Session, data: UserCreate) -> UserResponse:
    """
    Crée un compte. L'email est unique (insensible à la casse) ;
    class_id n'est accepté que pour un élève.
    """
    email = data.email.strip().lower()
    if db.execute(select(User.id).where(User.email == email)).scalar() is not None:
        raise ConflictError("Un utilisateur avec cet email existe déjà.")

    if data.class_id is not None:
        if data.role != Role.STUDENT:
            raise ValidationError("Seul un élève peut être rattaché à une classe.", field="class_id")
        if db.get(SchoolClass, data.class_id) is None:
            raise NotFoundError("Classe introuvable.")

    user = User(
        email=email,
        password_hash=hash_password(data.password),
        role=data.role.value,
        first_name=data.first_name,
        last_name=data.last_name,
        class_id=data.class_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Un utilisateur avec cet email existe déjà.")
    db.refresh(user)

    logger.info("Utilisateur créé : %s (%s)", user.id, user.role)
    return UserResponse.model_validate(user)


def list_users(db: Session) -> list[UserResponse]:
    users = db.execute(
        select(User).order_by(User.last_name, User.first_name)
    ).scalars().all()
    return [UserResponse.model_validate(u) for u in users]


def set_user_active(db: Session, actor: Actor, user_id: int, is_active: bool) -> UserResponse:
    """Désactivation douce : le compte n'est jamais supprimé."""
    if not isinstance(is_active, bool):
        raise ValidationError("is_active doit être un booléen.", field="is_active")
    if user_id == actor.id and not is_active:
        raise ForbiddenError("Impossible de désactiver son propre compte.")

    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Utilisateur introuvable.")

    user.is_active = is_active
    db.commit()
    db.refresh(user)
    logger.info("Utilisateur %s %s par %s", user.id, "activé" if is_active else "désactivé", actor.id)
    return UserResponse.model_validate(user)


def get_user(db: Session, user_id: int) -> UserResponse:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("Utilisateur introuvable.")
    return UserResponse.model_validate(user)


def link_parent_student(db: Session, parent_id: int, student_id: int) -> bool:
    """
    Lie un parent à un élève.
    Retourne True si le lien est créé, False s'il existait déjà.
    """
    parent = db.get(User, parent_id)
    if parent is None or parent.role != Role.PARENT.value:
        raise NotFoundError("Parent introuvable.")
    student = db.get(User, student_id)
    if student is None or student.role != Role.STUDENT.value:
        raise NotFoundError("Élève introuvable.")

    if db.get(ParentStudent, (parent_id, student_id)) is not None:
        return False

    db.add(ParentStudent(parent_id=parent_id, student_id=student_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    logger.info("Parent %s lié à l'élève %s", parent_id, student_id)
    return True


def get_my_students(db: Session, actor: Actor) -> list[StudentSummary]:
    """
    PARENT : ses enfants. PROFESSOR : élèves actifs de ses classes.
    DIRECTION : tous les élèves actifs. STUDENT : aucun.
    """
    query = (
        select(User, SchoolClass.name)
        .outerjoin(SchoolClass, SchoolClass.id == User.class_id)
        .where(User.role == Role.STUDENT.value)
        .order_by(User.last_name, User.first_name)
    )

    if actor.role == Role.PARENT:
        if not actor.child_ids:
            return []
        query = query.where(User.id.in_(sorted(actor.child_ids)))
    elif actor.role == Role.PROFESSOR:
        if not actor.taught_class_ids:
            return []
        query = query.where(User.is_active.is_(True), User.class_id.in_(sorted(actor.taught_class_ids)))
    elif actor.role == Role.DIRECTION:
        query = query.where(User.is_active.is_(True))
    else:
        return []

    return [
        StudentSummary(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            class_id=user.class_id,
            class_name=class_name,
        )
        for user, class_name in db.execute(query).all()
    ]
