"""
Fabriques de données pour les tests sur base SQLite.
"""

import itertools
from datetime import datetime
from typing import Optional

from app.models.post import Post, PostType
from app.models.school_class import ParentStudent, ProfessorClass, SchoolClass
from app.models.user import Role, User
from app.security import hash_password
from app.services.identity_service import Actor, load_actor

_seq = itertools.count(1)

PASSWORD = "motdepasse123"
_PASSWORD_HASH = hash_password(PASSWORD)


def make_class(db, name: Optional[str] = None, class_id: Optional[int] = None) -> SchoolClass:
    school_class = SchoolClass(id=class_id, name=name or f"Classe {next(_seq)}")
    db.add(school_class)
    db.commit()
    return school_class


def make_user(db, role: Role, class_id: Optional[int] = None, is_active: bool = True,
              first_name: str = "Prénom", last_name: str = "Nom") -> User:
    n = next(_seq)
    user = User(
        email=f"{role.value.lower()}{n}@ecole.be",
        password_hash=_PASSWORD_HASH,
        role=role.value,
        first_name=first_name,
        last_name=f"{last_name}{n}",
        is_active=is_active,
        class_id=class_id,
    )
    db.add(user)
    db.commit()
    return user


def link_parent(db, parent: User, student: User) -> None:
    db.add(ParentStudent(parent_id=parent.id, student_id=student.id))
    db.commit()


def assign_professor(db, professor: User, school_class: SchoolClass) -> None:
    db.add(ProfessorClass(professor_id=professor.id, class_id=school_class.id))
    db.commit()


def make_post(db, author: User, content: str = "Annonce", post_type: PostType = PostType.GENERAL,
              class_id: Optional[int] = None, is_pinned: bool = False,
              created_at: Optional[datetime] = None) -> Post:
    post = Post(
        author_id=author.id,
        content=content,
        type=post_type.value,
        class_id=class_id,
        is_pinned=is_pinned,
        created_at=created_at or datetime.now(),
    )
    db.add(post)
    db.commit()
    return post


def actor_of(db, user: User) -> Actor:
    return load_actor(db, user)
