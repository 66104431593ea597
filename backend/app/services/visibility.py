"""
Moteur de portée de visibilité du fil d'actualité.

Produit un prédicat SQL (pas un filtre en mémoire) pour que la pagination
reste exacte côté base.
"""

from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import ColumnElement, false, or_, true

from app.exceptions import ValidationError
from app.models.post import Post
from app.models.user import Role
from app.services.identity_service import Actor

ALL_CLASSES = "all"


@dataclass(frozen=True)
class GlobalScope:
    """Publication pour toute l'école."""


@dataclass(frozen=True)
class SpecificClass:
    class_id: int


ClassScope = Union[GlobalScope, SpecificClass]


def scope_for(class_id: Optional[int]) -> ClassScope:
    return GlobalScope() if class_id is None else SpecificClass(class_id)


def parse_class_filter(raw: Optional[Union[str, int]]) -> Optional[int]:
    """Filtre de classe reçu du client : absent ou "all" → aucun filtre."""
    if raw is None:
        return None
    if isinstance(raw, int):
        return raw
    value = raw.strip()
    if value == "" or value.lower() == ALL_CLASSES:
        return None
    if not (value.isascii() and value.isdigit()):
        raise ValidationError("Identifiant de classe invalide.", field="classId")
    return int(value)


def post_visibility_clause(actor: Actor, requested_class_id: Optional[int] = None) -> ColumnElement[bool]:
    """
    STUDENT : publications globales + sa classe.
    PARENT : publications globales + classes de ses enfants (aucun enfant → globales seules).
    DIRECTION / PROFESSOR : tout, ou la classe demandée si un filtre est fourni.
    Pour le personnel le filtre est une vue de confort, pas une frontière de sécurité.
    """
    if actor.role == Role.STUDENT:
        if actor.class_id is None:
            return Post.class_id.is_(None)
        return or_(Post.class_id.is_(None), Post.class_id == actor.class_id)

    if actor.role == Role.PARENT:
        if not actor.child_class_ids:
            return Post.class_id.is_(None)
        return or_(Post.class_id.is_(None), Post.class_id.in_(sorted(actor.child_class_ids)))

    if actor.role in (Role.DIRECTION, Role.PROFESSOR):
        if requested_class_id is not None:
            return Post.class_id == requested_class_id
        return true()

    return false()


def is_post_visible(actor: Actor, scope: ClassScope) -> bool:
    """Même règle que post_visibility_clause, pour une publication déjà chargée."""
    if actor.role in (Role.DIRECTION, Role.PROFESSOR):
        return True
    if isinstance(scope, GlobalScope):
        return True
    if actor.role == Role.STUDENT:
        return actor.class_id == scope.class_id
    if actor.role == Role.PARENT:
        return scope.class_id in actor.child_class_ids
    return False


# Épinglées d'abord, puis les plus récentes ; l'id départage les horodatages égaux
FEED_ORDERING = (Post.is_pinned.desc(), Post.created_at.desc(), Post.id.asc())
