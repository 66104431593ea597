"""
Identité et session : résout un jeton porteur en Actor.

L'Actor est une valeur explicite (identité, rôle, relations déjà chargées)
passée en argument à chaque opération métier.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import AuthenticationError, InactiveAccount, InvalidToken
from app.models.school_class import ParentStudent, ProfessorClass
from app.models.user import Role, User
from app.security import create_access_token, decode_access_token, verify_password

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    # STUDENT : classe de l'élève
    class_id: Optional[int] = None
    # PROFESSOR : classes enseignées
    taught_class_ids: frozenset[int] = field(default_factory=frozenset)
    # PARENT : enfants liés et leurs classes
    child_ids: frozenset[int] = field(default_factory=frozenset)
    child_class_ids: frozenset[int] = field(default_factory=frozenset)


def load_actor(db: Session, user: User) -> Actor:
    """Construit l'Actor d'un utilisateur en chargeant uniquement les relations utiles à son rôle."""
    role = Role(user.role)
    taught: frozenset[int] = frozenset()
    children: frozenset[int] = frozenset()
    child_classes: frozenset[int] = frozenset()

    if role == Role.PROFESSOR:
        taught = frozenset(db.execute(
            select(ProfessorClass.class_id).where(ProfessorClass.professor_id == user.id)
        ).scalars().all())
    elif role == Role.PARENT:
        rows = db.execute(
            select(ParentStudent.student_id, User.class_id)
            .join(User, User.id == ParentStudent.student_id)
            .where(ParentStudent.parent_id == user.id)
        ).all()
        children = frozenset(student_id for student_id, _ in rows)
        child_classes = frozenset(class_id for _, class_id in rows if class_id is not None)

    return Actor(
        id=user.id,
        role=role,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        class_id=user.class_id if role == Role.STUDENT else None,
        taught_class_ids=taught,
        child_ids=children,
        child_class_ids=child_classes,
    )


def resolve_actor(db: Session, token: str) -> Actor:
    """
    Vérifie le jeton puis relit l'utilisateur en base : le rôle ou le statut
    peuvent avoir changé depuis l'émission du jeton.
    """
    payload = decode_access_token(token)
    user = db.get(User, payload["sub"])

    if user is None:
        raise InvalidToken("Utilisateur introuvable.")
    if not user.is_active:
        raise InactiveAccount()
    if user.role not in {r.value for r in Role}:
        logger.error("Rôle invalide en base pour l'utilisateur %s : %s", user.id, user.role)
        raise InvalidToken("Configuration de rôle invalide.")

    return load_actor(db, user)


def authenticate(db: Session, email: str, password: str) -> tuple[User, str]:
    """
    Vérifie les identifiants et émet un jeton d'accès.
    Identifiants inconnus ou faux → AuthenticationError ; compte désactivé → InactiveAccount.
    """
    user = db.execute(select(User).where(User.email == email.strip().lower())).scalar()

    if user is None or not verify_password(password, user.password_hash):
        logger.info("Échec de connexion pour %s", email)
        raise AuthenticationError("Identifiants invalides.")
    if not user.is_active:
        raise InactiveAccount()

    token = create_access_token(user.id, user.role, user.email)
    logger.info("Connexion de l'utilisateur %s (%s)", user.id, user.role)
    return user, token
