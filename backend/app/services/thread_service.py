"""
Service métier de la messagerie : fils de discussion autour d'un élève.

Cycle de vie d'un fil : inexistant → créé → actif (chaque message avance last_message_at).

Politique d'accès :
- la boîte de réception (get_threads, get_unread_count, mark_as_read) est définie
  par la participation, pour tous les rôles ;
- la direction peut lire et écrire dans n'importe quel fil connu par son id
  (get_thread, add_message) sans en être participante.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.attachment import Attachment
from app.models.school_class import ParentStudent
from app.models.thread import Message, MessageThread, ThreadParticipant, ThreadRead
from app.models.user import Role, User
from app.schemas.thread import (
    MarkReadResponse,
    MessageResponse,
    StudentRef,
    ThreadCreate,
    ThreadDetail,
    ThreadSummary,
    UnreadCountResponse,
)
from app.schemas.user import UserSummary
from app.services import attachment_service
from app.services.attachment_service import IncomingFile
from app.services.capabilities import can_access_thread, can_create_thread, can_message_role
from app.services.identity_service import Actor
from app.storage import ObjectStore

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000


def participant_key(user_a: int, user_b: int) -> str:
    """Clé canonique d'une paire de participants, indépendante de l'ordre."""
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


def create_thread(db: Session, actor: Actor, data: ThreadCreate) -> tuple[ThreadDetail, bool]:
    """
    Ouvre un fil entre l'acteur et un destinataire à propos d'un élève,
    ou retourne le fil existant.

    Étapes :
    1. Valider student_id
    2. Vérifier le lien de l'acteur avec l'élève (parent de / enseigne à)
    3. Résoudre le destinataire (id explicite, sinon par rôle)
    4. Refuser un fil avec soi-même
    5. Réutiliser le fil existant pour (élève, paire de participants), sinon le créer

    Retourne (fil, créé).
    """
    student_id = data.student_id
    if isinstance(student_id, bool) or not isinstance(student_id, int) or student_id < 1:
        raise ValidationError("Identifiant d'élève invalide ou manquant.", field="student_id")

    student = db.get(User, student_id)
    if student is None or student.role != Role.STUDENT.value:
        raise NotFoundError("Élève introuvable.")

    if actor.role == Role.PROFESSOR and student.class_id is None:
        raise NotFoundError("Élève introuvable ou sans classe.")

    if not can_create_thread(
        actor.role,
        actor.id,
        student_id,
        child_ids=actor.child_ids,
        taught_class_ids=actor.taught_class_ids,
        student_class_id=student.class_id,
    ):
        raise ForbiddenError()

    recipient = _resolve_recipient(db, actor, student_id, data)

    if recipient.id == actor.id:
        raise ValidationError("Impossible de créer un fil avec soi-même.", field="recipient_user_id")

    key = participant_key(actor.id, recipient.id)
    existing = _find_existing_thread(db, student_id, actor.id, recipient.id)
    if existing is not None:
        return _to_detail(existing, with_messages=True), False

    thread = MessageThread(student_id=student_id, participant_key=key, last_message_at=datetime.now())
    thread.participants = [
        ThreadParticipant(user_id=actor.id),
        ThreadParticipant(user_id=recipient.id),
    ]
    db.add(thread)
    try:
        db.commit()
    except IntegrityError:
        # Création concurrente de la même paire : le fil gagnant est réutilisé
        db.rollback()
        existing = _find_existing_thread(db, student_id, actor.id, recipient.id)
        if existing is None:
            raise
        logger.info("Fil %s réutilisé après création concurrente", existing.id)
        return _to_detail(existing, with_messages=True), False
    db.refresh(thread)

    logger.info(
        "Fil %s créé : %s (%s) → %s (%s) à propos de l'élève %s",
        thread.id, actor.id, actor.role.value, recipient.id, recipient.role, student_id,
    )
    return _to_detail(thread, with_messages=True), True


def add_message(
    db: Session,
    actor: Actor,
    thread_id: int,
    content: str,
    files: Optional[list[IncomingFile]] = None,
    store: Optional[ObjectStore] = None,
) -> MessageResponse:
    """
    Ajoute un message au fil.
    L'insertion du message (et de ses pièces jointes) et la mise à jour de
    last_message_at sont validées ensemble ou pas du tout.
    """
    if content is None or not isinstance(content, str):
        raise ValidationError("Le contenu est obligatoire.", field="content")
    trimmed = content.strip()
    if len(trimmed) < 1 or len(trimmed) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Le message doit contenir entre 1 et {MAX_MESSAGE_LENGTH} caractères.", field="content"
        )

    thread = db.get(MessageThread, thread_id)
    if thread is None:
        raise NotFoundError("Fil introuvable.")
    if not can_access_thread(actor.role, actor.id, thread.participant_ids):
        raise ForbiddenError()

    stored = attachment_service.store_files(store, files) if files else []

    now = datetime.now()
    try:
        message = Message(thread_id=thread.id, sender_id=actor.id, content=trimmed, created_at=now)
        message.attachments = [
            Attachment(
                url=a.url,
                storage_key=a.storage_key,
                filename=a.filename,
                mime_type=a.mime_type,
                size=a.size,
            )
            for a in stored
        ]
        db.add(message)
        db.flush()
        thread.last_message_at = now
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        attachment_service.discard_files(store, stored)
        logger.error("Échec de l'envoi d'un message dans le fil %s", thread_id, exc_info=True)
        raise
    db.refresh(message)

    logger.info("Message %s envoyé par %s dans le fil %s", message.id, actor.id, thread_id)
    return MessageResponse.model_validate(message)


def get_threads(db: Session, actor: Actor) -> list[ThreadSummary]:
    """Fils dont l'acteur est participant, les plus récemment actifs d'abord."""
    threads = db.execute(
        select(MessageThread)
        .join(ThreadParticipant, ThreadParticipant.thread_id == MessageThread.id)
        .where(ThreadParticipant.user_id == actor.id)
        .order_by(MessageThread.last_message_at.desc(), MessageThread.id.desc())
    ).unique().scalars().all()

    unread = unread_counts(db, actor.id, [t.id for t in threads])

    summaries = []
    for thread in threads:
        last_message = db.execute(
            select(Message)
            .where(Message.thread_id == thread.id)
            .options(selectinload(Message.attachments))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        ).unique().scalar()
        summaries.append(ThreadSummary(
            id=thread.id,
            student=StudentRef.model_validate(thread.student) if thread.student else None,
            participants=_participants(thread),
            last_message_at=thread.last_message_at,
            created_at=thread.created_at,
            last_message=MessageResponse.model_validate(last_message) if last_message else None,
            unread_count=unread.get(thread.id, 0),
        ))
    return summaries


def get_thread(db: Session, actor: Actor, thread_id: int) -> ThreadDetail:
    """Transcript complet par ordre chronologique."""
    thread = db.get(MessageThread, thread_id)
    if thread is None:
        raise NotFoundError("Fil introuvable.")
    if not can_access_thread(actor.role, actor.id, thread.participant_ids):
        raise ForbiddenError()
    return _to_detail(thread, with_messages=True)


def mark_as_read(db: Session, actor: Actor, thread_id: int) -> MarkReadResponse:
    """
    Avance le filigrane de lecture de l'acteur.
    Participation littérale exigée : la direction ne contourne pas ce contrôle.
    """
    participant = db.get(ThreadParticipant, (thread_id, actor.id))
    if participant is None:
        raise ForbiddenError()

    now = datetime.now()
    read = db.get(ThreadRead, (thread_id, actor.id))
    if read is None:
        db.add(ThreadRead(thread_id=thread_id, user_id=actor.id, last_read_at=now))
    else:
        read.last_read_at = now

    try:
        db.commit()
    except IntegrityError:
        # Lecture concurrente : la ligne existe désormais, on la met à jour
        db.rollback()
        read = db.get(ThreadRead, (thread_id, actor.id))
        read.last_read_at = now
        db.commit()

    return MarkReadResponse(success=True, thread_id=thread_id, last_read_at=now)


def get_unread_count(db: Session, actor: Actor) -> UnreadCountResponse:
    """Total des non-lus sur tous les fils de l'acteur, avec le détail par fil."""
    thread_ids = db.execute(
        select(ThreadParticipant.thread_id).where(ThreadParticipant.user_id == actor.id)
    ).scalars().all()
    per_thread = unread_counts(db, actor.id, thread_ids)
    return UnreadCountResponse(total=sum(per_thread.values()), threads=per_thread)


def unread_counts(db: Session, user_id: int, thread_ids: list[int]) -> dict[int, int]:
    """
    Non-lus par fil en une requête groupée :
    messages postérieurs au filigrane (ou à la création du fil) et non envoyés par l'utilisateur.
    """
    if not thread_ids:
        return {}

    watermark = func.coalesce(ThreadRead.last_read_at, MessageThread.created_at)
    rows = db.execute(
        select(Message.thread_id, func.count(Message.id))
        .join(MessageThread, MessageThread.id == Message.thread_id)
        .outerjoin(
            ThreadRead,
            and_(ThreadRead.thread_id == Message.thread_id, ThreadRead.user_id == user_id),
        )
        .where(
            Message.thread_id.in_(thread_ids),
            Message.sender_id != user_id,
            Message.created_at > watermark,
        )
        .group_by(Message.thread_id)
    ).all()

    counts = {thread_id: 0 for thread_id in thread_ids}
    counts.update({thread_id: count for thread_id, count in rows})
    return counts


def _resolve_recipient(db: Session, actor: Actor, student_id: int, data: ThreadCreate) -> User:
    """
    Destinataire explicite (recipient_user_id) en priorité, sinon résolution par rôle :
    DIRECTION → un autre compte direction actif, PROFESSOR → un professeur actif,
    PARENT → le parent lié à l'élève.
    """
    if data.recipient_user_id is not None:
        recipient = db.get(User, data.recipient_user_id)
        if recipient is None or not recipient.is_active:
            raise NotFoundError("Destinataire introuvable.")
        if not can_message_role(actor.role, Role(recipient.role)):
            raise ForbiddenError()
        return recipient

    if not data.recipient_role:
        raise ValidationError("Destinataire manquant.", field="recipient_role")
    try:
        recipient_role = Role(data.recipient_role)
    except ValueError:
        raise ValidationError(
            f"Rôle destinataire invalide : {data.recipient_role}", field="recipient_role"
        )
    if not can_message_role(actor.role, recipient_role):
        raise ForbiddenError()

    if recipient_role == Role.DIRECTION:
        recipient = db.execute(
            select(User)
            .where(User.role == Role.DIRECTION.value, User.is_active.is_(True), User.id != actor.id)
            .order_by(User.id)
            .limit(1)
        ).scalar()
        if recipient is None:
            raise NotFoundError("Aucun autre compte de direction trouvé.")
        return recipient

    if recipient_role == Role.PROFESSOR:
        # TODO: restreindre aux professeurs de la classe de l'élève une fois la règle validée par l'école
        recipient = db.execute(
            select(User)
            .where(User.role == Role.PROFESSOR.value, User.is_active.is_(True))
            .order_by(User.id)
            .limit(1)
        ).scalar()
        if recipient is None:
            raise NotFoundError("Aucun professeur trouvé.")
        return recipient

    recipient = db.execute(
        select(User)
        .join(ParentStudent, ParentStudent.parent_id == User.id)
        .where(ParentStudent.student_id == student_id)
        .order_by(User.id)
        .limit(1)
    ).scalar()
    if recipient is None:
        raise NotFoundError("Aucun parent lié à cet élève.")
    return recipient


def _find_existing_thread(
    db: Session, student_id: int, user_a: int, user_b: int
) -> Optional[MessageThread]:
    """Parcours linéaire des fils de l'élève : suffisant à l'échelle d'une école."""
    candidates = db.execute(
        select(MessageThread)
        .where(MessageThread.student_id == student_id)
        .order_by(MessageThread.id)
    ).unique().scalars().all()
    for thread in candidates:
        ids = thread.participant_ids
        if user_a in ids and user_b in ids:
            return thread
    return None


def _participants(thread: MessageThread) -> list[UserSummary]:
    return [
        UserSummary.model_validate(p.user)
        for p in sorted(thread.participants, key=lambda p: p.user_id)
    ]


def _to_detail(thread: MessageThread, with_messages: bool) -> ThreadDetail:
    messages = sorted(thread.messages, key=lambda m: (m.created_at, m.id)) if with_messages else []
    return ThreadDetail(
        id=thread.id,
        student=StudentRef.model_validate(thread.student) if thread.student else None,
        participants=_participants(thread),
        last_message_at=thread.last_message_at,
        created_at=thread.created_at,
        messages=[MessageResponse.model_validate(m) for m in messages],
    )
