"""
Création des tables et jeu de données de démonstration.
Usage : python -m app.seed

Idempotent : les enregistrements existants (même email / même nom) sont réutilisés.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

import app.models  # noqa: F401
from app.database import Base, SessionLocal, engine
from app.models.post import Post, PostType
from app.models.school_class import ParentStudent, ProfessorClass, SchoolClass
from app.models.thread import Message, MessageThread, ThreadParticipant
from app.models.user import Role, User
from app.security import hash_password
from app.services.thread_service import participant_key

logger = logging.getLogger(__name__)

DEMO_PASSWORD = "password123"


def _get_or_create_class(db: Session, name: str) -> SchoolClass:
    school_class = db.execute(select(SchoolClass).where(SchoolClass.name == name)).scalar()
    if school_class is None:
        school_class = SchoolClass(name=name)
        db.add(school_class)
        db.flush()
    return school_class


def _get_or_create_user(db: Session, email: str, role: Role, first_name: str, last_name: str,
                        password_hash: str, class_id=None) -> User:
    user = db.execute(select(User).where(User.email == email)).scalar()
    if user is None:
        user = User(
            email=email,
            password_hash=password_hash,
            role=role.value,
            first_name=first_name,
            last_name=last_name,
            class_id=class_id,
        )
        db.add(user)
        db.flush()
    return user


def seed(db: Session) -> dict:
    """Peuple une petite école : 2 classes, direction, professeur, élèves, parents, un fil et une annonce."""
    password_hash = hash_password(DEMO_PASSWORD)

    class_3b = _get_or_create_class(db, "3ème B")
    class_4a = _get_or_create_class(db, "4ème A")

    direction = _get_or_create_user(db, "admin@ecole.com", Role.DIRECTION, "Directeur", "Principal", password_hash)
    _get_or_create_user(db, "admin2@ecole.com", Role.DIRECTION, "Vice", "Directeur", password_hash)
    prof = _get_or_create_user(db, "prof@ecole.com", Role.PROFESSOR, "Jean", "Dupont", password_hash)

    if db.get(ProfessorClass, (prof.id, class_3b.id)) is None:
        db.add(ProfessorClass(professor_id=prof.id, class_id=class_3b.id))

    # Léo (3ème B) : élève du professeur ; Julie (4ème A) : hors de ses classes
    leo = _get_or_create_user(db, "student@ecole.com", Role.STUDENT, "Léo", "Martin", password_hash, class_3b.id)
    julie = _get_or_create_user(db, "julie@ecole.com", Role.STUDENT, "Julie", "Bernard", password_hash, class_4a.id)

    parent_leo = _get_or_create_user(db, "parent@ecole.com", Role.PARENT, "Sophie", "Martin", password_hash)
    parent_julie = _get_or_create_user(db, "parent.julie@ecole.com", Role.PARENT, "Claire", "Bernard", password_hash)

    for parent, student in ((parent_leo, leo), (parent_julie, julie)):
        if db.get(ParentStudent, (parent.id, student.id)) is None:
            db.add(ParentStudent(parent_id=parent.id, student_id=student.id))

    key = participant_key(parent_leo.id, direction.id)
    thread = db.execute(
        select(MessageThread).where(MessageThread.student_id == leo.id, MessageThread.participant_key == key)
    ).scalar()
    if thread is None:
        now = datetime.now()
        thread = MessageThread(
            student_id=leo.id,
            participant_key=key,
            created_at=now - timedelta(minutes=10),
            last_message_at=now - timedelta(minutes=1),
        )
        thread.participants = [
            ThreadParticipant(user_id=parent_leo.id),
            ThreadParticipant(user_id=direction.id),
        ]
        thread.messages = [
            Message(sender_id=parent_leo.id, content="Bonjour Monsieur le Directeur",
                    created_at=now - timedelta(minutes=5)),
            Message(sender_id=direction.id, content="Bonjour Madame Martin",
                    created_at=now - timedelta(minutes=1)),
        ]
        db.add(thread)

    if db.execute(select(Post.id).where(Post.author_id == direction.id)).first() is None:
        db.add(Post(
            author_id=direction.id,
            content="Bienvenue sur l'espace de communication de l'école !",
            type=PostType.GENERAL.value,
            is_pinned=True,
        ))

    db.commit()
    summary = {
        "classes": {"3B": class_3b.id, "4A": class_4a.id},
        "direction": direction.id,
        "professor": prof.id,
        "students": {"leo": leo.id, "julie": julie.id},
        "parents": {"leo": parent_leo.id, "julie": parent_julie.id},
        "thread": thread.id,
    }
    logger.info("Jeu de démonstration prêt : %s", summary)
    return summary


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
