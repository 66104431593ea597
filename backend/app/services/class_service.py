"""
Service métier pour la gestion des classes et des affectations professeurs.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.school_class import ProfessorClass, SchoolClass
from app.models.user import Role, User
from app.schemas.user import ClassCreate, ClassResponse, ClassSummary, ProfessorClassesAssign
from app.services.identity_service import Actor

logger = logging.getLogger(__name__)


def create_class(db: Session, data: ClassCreate) -> ClassResponse:
    """
    Crée une nouvelle classe.
    Lève une ConflictError si le nom existe déjà.
    """
    school_class = SchoolClass(name=data.name)
    db.add(school_class)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"Une classe avec le nom '{data.name}' existe déjà.")
    db.refresh(school_class)
    logger.info("Classe créée : %s (%s)", school_class.name, school_class.id)
    return _to_response(db, school_class)


def get_classes(db: Session) -> list[ClassResponse]:
    """Retourne toutes les classes, triées par nom."""
    classes = db.execute(
        select(SchoolClass).order_by(SchoolClass.name)
    ).scalars().all()
    return [_to_response(db, c) for c in classes]


def get_my_classes(db: Session, actor: Actor) -> list[ClassSummary]:
    """
    DIRECTION : toutes les classes. PROFESSOR : ses classes.
    Élèves et parents n'ont pas de liste : leur portée est implicite.
    """
    if actor.role == Role.DIRECTION:
        query = select(SchoolClass).order_by(SchoolClass.name)
    elif actor.role == Role.PROFESSOR:
        if not actor.taught_class_ids:
            return []
        query = (
            select(SchoolClass)
            .where(SchoolClass.id.in_(sorted(actor.taught_class_ids)))
            .order_by(SchoolClass.name)
        )
    else:
        return []
    return [ClassSummary.model_validate(c) for c in db.execute(query).scalars().all()]


def assign_professor_classes(
    db: Session, professor_id: int, data: ProfessorClassesAssign
) -> list[ClassSummary]:
    """
    Affecte des classes à un professeur.
    Les affectations déjà existantes sont ignorées (pas de doublon).
    """
    professor = db.get(User, professor_id)
    if professor is None or professor.role != Role.PROFESSOR.value:
        raise NotFoundError("Professeur introuvable.")

    known = set(db.execute(
        select(SchoolClass.id).where(SchoolClass.id.in_(data.class_ids))
    ).scalars().all())
    missing = set(data.class_ids) - known
    if missing:
        raise ValidationError(
            f"Classe(s) introuvable(s) : {', '.join(str(c) for c in sorted(missing))}",
            field="class_ids",
        )

    existing = set(db.execute(
        select(ProfessorClass.class_id).where(ProfessorClass.professor_id == professor_id)
    ).scalars().all())

    to_insert = [
        {"professor_id": professor_id, "class_id": cid}
        for cid in sorted(set(data.class_ids))
        if cid not in existing
    ]
    if to_insert:
        db.bulk_insert_mappings(ProfessorClass, to_insert)
        db.commit()
        logger.info("Professeur %s : %d classe(s) affectée(s)", professor_id, len(to_insert))

    classes = db.execute(
        select(SchoolClass)
        .join(ProfessorClass, ProfessorClass.class_id == SchoolClass.id)
        .where(ProfessorClass.professor_id == professor_id)
        .order_by(SchoolClass.name)
    ).scalars().all()
    return [ClassSummary.model_validate(c) for c in classes]


def remove_professor_class(db: Session, professor_id: int, class_id: int) -> bool:
    """Retire une classe à un professeur. Retourne True si retiré, False si lien inexistant."""
    link = db.get(ProfessorClass, (professor_id, class_id))
    if link is None:
        return False
    db.delete(link)
    db.commit()
    return True


def _to_response(db: Session, school_class: SchoolClass) -> ClassResponse:
    """Construit le schéma de réponse avec les compteurs élèves et professeurs."""
    nb_students = db.execute(
        select(func.count())
        .select_from(User)
        .where(User.class_id == school_class.id, User.role == Role.STUDENT.value)
    ).scalar() or 0

    nb_professors = db.execute(
        select(func.count())
        .select_from(ProfessorClass)
        .where(ProfessorClass.class_id == school_class.id)
    ).scalar() or 0

    return ClassResponse(
        id=school_class.id,
        name=school_class.name,
        nb_students=nb_students,
        nb_professors=nb_professors,
        created_at=school_class.created_at,
    )
