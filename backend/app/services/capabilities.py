"""
Modèle de capacités par rôle.

Fonctions pures : aucune I/O. L'appelant charge les relations nécessaires
(classes enseignées, enfants liés, participants) et les passe en argument.
"""

from collections.abc import Iterable
from typing import Optional

from app.exceptions import ForbiddenError
from app.models.user import Role
from app.services.identity_service import Actor

POST_AUTHOR_ROLES = frozenset({Role.DIRECTION, Role.PROFESSOR, Role.STUDENT})

# Rôles destinataires autorisés selon le rôle de l'initiateur d'un fil
RECIPIENT_ROLES: dict[Role, frozenset[Role]] = {
    Role.PARENT: frozenset({Role.PROFESSOR, Role.DIRECTION}),
    Role.PROFESSOR: frozenset({Role.DIRECTION}),
    Role.DIRECTION: frozenset({Role.PARENT, Role.PROFESSOR, Role.DIRECTION}),
}


def can_create_post(role: Role) -> bool:
    return role in POST_AUTHOR_ROLES


def can_post_to_class(actor: Actor, target_class_id: int) -> bool:
    """
    STUDENT : uniquement sa propre classe.
    PROFESSOR : uniquement une classe qu'il enseigne.
    DIRECTION : toujours.
    """
    if actor.role == Role.DIRECTION:
        return True
    if actor.role == Role.STUDENT:
        return actor.class_id is not None and actor.class_id == target_class_id
    if actor.role == Role.PROFESSOR:
        return target_class_id in actor.taught_class_ids
    return False


def ensure_can_post_to_class(actor: Actor, target_class_id: int) -> None:
    if not can_post_to_class(actor, target_class_id):
        raise ForbiddenError()


def can_edit_or_delete_post(actor_id: int, author_id: int, role: Role) -> bool:
    return actor_id == author_id or role == Role.DIRECTION


def can_pin(role: Role) -> bool:
    return role == Role.DIRECTION


def can_create_thread(
    role: Role,
    actor_id: int,
    student_id: int,
    child_ids: Iterable[int] = (),
    taught_class_ids: Iterable[int] = (),
    student_class_id: Optional[int] = None,
) -> bool:
    """
    PARENT : doit être lié à l'élève.
    PROFESSOR : la classe de l'élève doit faire partie de ses classes.
    DIRECTION, STUDENT : pas de restriction à ce niveau.
    """
    if role == Role.PARENT:
        return student_id in set(child_ids)
    if role == Role.PROFESSOR:
        return student_class_id is not None and student_class_id in set(taught_class_ids)
    return True


def can_message_role(initiator: Role, recipient: Role) -> bool:
    return recipient in RECIPIENT_ROLES.get(initiator, frozenset())


def can_access_thread(role: Role, actor_id: int, participant_ids: Iterable[int]) -> bool:
    return role == Role.DIRECTION or actor_id in set(participant_ids)
