"""
Service métier du fil d'actualité : publications, épinglage, commentaires, likes.
"""

import logging
import math
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from app.exceptions import ForbiddenError, InvalidPostType, NotFoundError, ValidationError
from app.models.attachment import Attachment
from app.models.post import Comment, Like, Post, PostType
from app.models.school_class import SchoolClass
from app.schemas.post import (
    AttachmentResponse,
    CommentResponse,
    LikeToggleResponse,
    Pagination,
    PostCreate,
    PostListResponse,
    PostResponse,
    PostUpdate,
)
from app.schemas.user import ClassSummary, UserSummary
from app.services import attachment_service
from app.services.attachment_service import IncomingFile
from app.services.capabilities import (
    can_create_post,
    can_edit_or_delete_post,
    can_pin,
    ensure_can_post_to_class,
)
from app.services.identity_service import Actor
from app.services.visibility import FEED_ORDERING, is_post_visible, post_visibility_clause, scope_for
from app.storage import ObjectStore

logger = logging.getLogger(__name__)

MAX_POST_LENGTH = 1000
MAX_COMMENT_LENGTH = 1000
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def parse_post_type(value: object) -> PostType:
    if isinstance(value, PostType):
        return value
    try:
        return PostType(value)
    except ValueError:
        raise InvalidPostType(value)


def validate_content(content: Optional[str], max_length: int, field: str = "content") -> str:
    """Contenu obligatoire, non vide après trim, longueur plafonnée."""
    if content is None or not isinstance(content, str) or not content.strip():
        raise ValidationError("Le contenu est obligatoire.", field=field)
    content = content.strip()
    if len(content) > max_length:
        raise ValidationError(
            f"Le contenu ne peut pas dépasser {max_length} caractères.", field=field
        )
    return content


def create_post(
    db: Session,
    actor: Actor,
    data: PostCreate,
    files: Optional[list[IncomingFile]] = None,
    store: Optional[ObjectStore] = None,
) -> PostResponse:
    """
    Crée une publication et ses pièces jointes dans une seule transaction.

    Étapes :
    1. Valider le type et le contenu
    2. Vérifier les capacités (rôle auteur, classe cible)
    3. Envoyer les fichiers au stockage
    4. Écrire publication + pièces jointes ; en cas d'échec, supprimer les fichiers envoyés
    """
    post_type = parse_post_type(data.type)
    content = validate_content(data.content, MAX_POST_LENGTH)

    if not can_create_post(actor.role):
        raise ForbiddenError()
    if data.class_id is not None:
        ensure_can_post_to_class(actor, data.class_id)
        if db.get(SchoolClass, data.class_id) is None:
            raise NotFoundError("Classe introuvable.")

    stored = attachment_service.store_files(store, files) if files else []

    post = Post(
        author_id=actor.id,
        content=content,
        type=post_type.value,
        # Seule la direction peut épingler dès la création
        is_pinned=bool(data.is_pinned) and can_pin(actor.role),
        class_id=data.class_id,
    )
    post.attachments = [
        Attachment(
            url=a.url,
            storage_key=a.storage_key,
            filename=a.filename,
            mime_type=a.mime_type,
            size=a.size,
        )
        for a in stored
    ]
    db.add(post)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        attachment_service.discard_files(store, stored)
        logger.error("Échec de l'enregistrement d'une publication de %s", actor.id, exc_info=True)
        raise
    db.refresh(post)

    logger.info(
        "Publication %s créée par %s (%s, classe=%s, %d pièce(s) jointe(s))",
        post.id, actor.id, post.type, post.class_id, len(stored),
    )
    return _to_response(post, likes_count=0, liked_by_me=False)


def list_posts(
    db: Session,
    actor: Actor,
    class_id: Optional[int] = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> PostListResponse:
    """Liste paginée des publications visibles par l'acteur, épinglées d'abord."""
    if page < 1:
        raise ValidationError("La page doit être supérieure ou égale à 1.", field="page")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"La limite doit être comprise entre 1 et {MAX_PAGE_SIZE}.", field="limit")

    clause = post_visibility_clause(actor, class_id)

    total = db.execute(select(func.count()).select_from(Post).where(clause)).scalar() or 0

    posts = db.execute(
        select(Post)
        .where(clause)
        .options(selectinload(Post.attachments), selectinload(Post.comments))
        .order_by(*FEED_ORDERING)
        .offset((page - 1) * limit)
        .limit(limit)
    ).unique().scalars().all()

    total_pages = math.ceil(total / limit) if total else 0
    return PostListResponse(
        posts=_hydrate(db, actor, posts),
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=total_pages,
            has_more=page < total_pages,
        ),
    )


def list_pinned_posts(db: Session, actor: Actor) -> list[PostResponse]:
    """Publications épinglées dans la portée de l'acteur, les plus récentes d'abord."""
    posts = db.execute(
        select(Post)
        .where(post_visibility_clause(actor), Post.is_pinned.is_(True))
        .options(selectinload(Post.attachments), selectinload(Post.comments))
        .order_by(*FEED_ORDERING)
    ).unique().scalars().all()
    return _hydrate(db, actor, posts)


def get_post(db: Session, actor: Actor, post_id: int) -> PostResponse:
    """Une publication invisible pour l'acteur est traitée comme inexistante."""
    post = db.get(Post, post_id)
    if post is None or not is_post_visible(actor, scope_for(post.class_id)):
        raise NotFoundError("Publication introuvable.")
    return _hydrate(db, actor, [post])[0]


def update_post(db: Session, actor: Actor, post_id: int, data: PostUpdate) -> PostResponse:
    """Met à jour les champs fournis. Réservé à l'auteur et à la direction."""
    content = validate_content(data.content, MAX_POST_LENGTH)
    fields = data.model_dump(exclude_unset=True)
    post_type = parse_post_type(fields["type"]) if fields.get("type") is not None else None

    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Publication introuvable.")
    if not can_edit_or_delete_post(actor.id, post.author_id, actor.role):
        raise ForbiddenError()

    post.content = content
    if post_type is not None:
        post.type = post_type.value
    if "class_id" in fields:
        new_class_id = fields["class_id"]
        if new_class_id is not None and new_class_id != post.class_id:
            ensure_can_post_to_class(actor, new_class_id)
            if db.get(SchoolClass, new_class_id) is None:
                raise NotFoundError("Classe introuvable.")
        post.class_id = new_class_id

    db.commit()
    db.refresh(post)
    logger.info("Publication %s modifiée par %s", post.id, actor.id)
    return _hydrate(db, actor, [post])[0]


def delete_post(db: Session, actor: Actor, post_id: int) -> None:
    """Supprime la publication ; pièces jointes, commentaires et likes suivent en cascade."""
    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Publication introuvable.")
    if not can_edit_or_delete_post(actor.id, post.author_id, actor.role):
        raise ForbiddenError()

    db.delete(post)
    db.commit()
    logger.info("Publication %s supprimée par %s", post_id, actor.id)


def toggle_pin(db: Session, actor: Actor, post_id: int, is_pinned: bool) -> PostResponse:
    if not isinstance(is_pinned, bool):
        raise ValidationError("is_pinned doit être un booléen.", field="is_pinned")
    if not can_pin(actor.role):
        raise ForbiddenError()

    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Publication introuvable.")

    post.is_pinned = is_pinned
    db.commit()
    db.refresh(post)
    logger.info("Publication %s %s par %s", post.id, "épinglée" if is_pinned else "désépinglée", actor.id)
    return _hydrate(db, actor, [post])[0]


def create_comment(db: Session, actor: Actor, post_id: int, content: str) -> CommentResponse:
    """Tout utilisateur authentifié peut commenter une publication qu'il voit."""
    content = validate_content(content, MAX_COMMENT_LENGTH)
    post = db.get(Post, post_id)
    if post is None or not is_post_visible(actor, scope_for(post.class_id)):
        raise NotFoundError("Publication introuvable.")

    comment = Comment(post_id=post_id, author_id=actor.id, content=content)
    db.add(comment)
    try:
        db.commit()
    except IntegrityError:
        # Publication supprimée entre la vérification et l'insertion
        db.rollback()
        raise NotFoundError("Publication introuvable.")
    db.refresh(comment)
    return CommentResponse.model_validate(comment)


def toggle_like(db: Session, actor: Actor, post_id: int) -> LikeToggleResponse:
    """Bascule la présence du like (post, acteur) et retourne le nouvel état."""
    post = db.get(Post, post_id)
    if post is None or not is_post_visible(actor, scope_for(post.class_id)):
        raise NotFoundError("Publication introuvable.")

    existing = db.get(Like, (post_id, actor.id))
    if existing is not None:
        db.delete(existing)
        liked = False
    else:
        db.add(Like(post_id=post_id, user_id=actor.id))
        liked = True

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # Double bascule concurrente : l'état en base fait foi
        if db.get(Post, post_id) is None:
            raise NotFoundError("Publication introuvable.")
        liked = db.get(Like, (post_id, actor.id)) is not None

    likes_count = db.execute(
        select(func.count()).select_from(Like).where(Like.post_id == post_id)
    ).scalar() or 0
    return LikeToggleResponse(liked=liked, likes_count=likes_count)


def _hydrate(db: Session, actor: Actor, posts: list[Post]) -> list[PostResponse]:
    """Ajoute likes_count et liked_by_me en deux requêtes groupées pour toute la page."""
    if not posts:
        return []
    post_ids = [p.id for p in posts]

    counts = dict(db.execute(
        select(Like.post_id, func.count())
        .where(Like.post_id.in_(post_ids))
        .group_by(Like.post_id)
    ).all())

    liked = set(db.execute(
        select(Like.post_id).where(and_(Like.post_id.in_(post_ids), Like.user_id == actor.id))
    ).scalars().all())

    return [
        _to_response(p, likes_count=counts.get(p.id, 0), liked_by_me=p.id in liked)
        for p in posts
    ]


def _to_response(post: Post, likes_count: int, liked_by_me: bool) -> PostResponse:
    return PostResponse(
        id=post.id,
        content=post.content,
        type=post.type,
        is_pinned=post.is_pinned,
        class_id=post.class_id,
        created_at=post.created_at,
        author=UserSummary.model_validate(post.author),
        school_class=ClassSummary.model_validate(post.school_class) if post.school_class else None,
        attachments=[AttachmentResponse.model_validate(a) for a in post.attachments],
        comments=[CommentResponse.model_validate(c) for c in post.comments],
        likes_count=likes_count,
        liked_by_me=liked_by_me,
    )
