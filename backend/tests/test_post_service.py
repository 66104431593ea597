"""
Tests du service de fil d'actualité sur base SQLite en mémoire.
"""

from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from app.exceptions import ForbiddenError, NotFoundError, UploadError, ValidationError
from app.models.attachment import Attachment
from app.models.post import Comment, Like, Post, PostType
from app.models.user import Role
from app.schemas.post import PostCreate, PostUpdate
from app.services import post_service
from app.services.attachment_service import IncomingFile
from app.storage import StoredObject
from helpers import actor_of, assign_professor, link_parent, make_class, make_post, make_user


def _store():
    store = MagicMock()
    store.put.side_effect = lambda data, filename, content_type: StoredObject(
        key=f"attachments/{filename}", url=f"/uploads/attachments/{filename}", size=len(data)
    )
    return store


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar()


# --- create_post ---

def test_direction_cree_une_publication_globale(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    result = post_service.create_post(
        db_session, actor_of(db_session, direction),
        PostCreate(content="  Réunion parents-professeurs  ", type="SCOLARITE"),
    )

    assert result.id is not None
    assert result.content == "Réunion parents-professeurs"
    assert result.type == "SCOLARITE"
    assert result.class_id is None
    assert result.author.id == direction.id
    assert result.likes_count == 0
    assert result.liked_by_me is False


def test_parent_ne_peut_pas_publier(db_session):
    parent = make_user(db_session, Role.PARENT)
    with pytest.raises(ForbiddenError):
        post_service.create_post(
            db_session, actor_of(db_session, parent), PostCreate(content="Bonjour", type="GENERAL")
        )
    assert _count(db_session, Post) == 0


def test_type_invalide(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(ValidationError) as exc:
        post_service.create_post(
            db_session, actor_of(db_session, direction), PostCreate(content="Bonjour", type="PROMO")
        )
    assert exc.value.field == "type"


@pytest.mark.parametrize("content", ["", "   ", "x" * 1001])
def test_contenu_invalide(db_session, content):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(ValidationError) as exc:
        post_service.create_post(
            db_session, actor_of(db_session, direction), PostCreate(content=content, type="GENERAL")
        )
    assert exc.value.field == "content"


def test_contenu_de_1000_caracteres_accepte(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    result = post_service.create_post(
        db_session, actor_of(db_session, direction), PostCreate(content="x" * 1000, type="GENERAL")
    )
    assert len(result.content) == 1000


def test_professeur_hors_de_ses_classes_refuse(db_session):
    c7, c9 = make_class(db_session), make_class(db_session)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c7)

    with pytest.raises(ForbiddenError):
        post_service.create_post(
            db_session, actor_of(db_session, prof),
            PostCreate(content="Devoir", type="SCOLARITE", class_id=c9.id),
        )


def test_professeur_publie_dans_sa_classe(db_session):
    c7 = make_class(db_session)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c7)

    result = post_service.create_post(
        db_session, actor_of(db_session, prof),
        PostCreate(content="Devoir", type="SCOLARITE", class_id=c7.id),
    )
    assert result.class_id == c7.id
    assert result.school_class.name == c7.name


def test_eleve_publie_dans_sa_classe_mais_pas_ailleurs(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    student = make_user(db_session, Role.STUDENT, class_id=c1.id)
    actor = actor_of(db_session, student)

    ok = post_service.create_post(db_session, actor, PostCreate(content="Sortie", type="ACTIVITE", class_id=c1.id))
    assert ok.class_id == c1.id

    with pytest.raises(ForbiddenError):
        post_service.create_post(db_session, actor, PostCreate(content="Sortie", type="ACTIVITE", class_id=c2.id))


def test_classe_inexistante(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(NotFoundError):
        post_service.create_post(
            db_session, actor_of(db_session, direction),
            PostCreate(content="Annonce", type="GENERAL", class_id=999),
        )


def test_epinglage_a_la_creation_reserve_a_la_direction(db_session):
    c1 = make_class(db_session)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c1)
    direction = make_user(db_session, Role.DIRECTION)

    by_prof = post_service.create_post(
        db_session, actor_of(db_session, prof),
        PostCreate(content="Annonce", type="GENERAL", class_id=c1.id, is_pinned=True),
    )
    by_direction = post_service.create_post(
        db_session, actor_of(db_session, direction),
        PostCreate(content="Annonce", type="GENERAL", is_pinned=True),
    )

    assert by_prof.is_pinned is False
    assert by_direction.is_pinned is True


def test_pieces_jointes_enregistrees(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    store = _store()
    files = [
        IncomingFile("plan.pdf", "application/pdf", b"%PDF-1.4"),
        IncomingFile("photo.png", "image/png", b"\x89PNG"),
    ]

    result = post_service.create_post(
        db_session, actor_of(db_session, direction),
        PostCreate(content="Plan de la sortie", type="ACTIVITE"), files=files, store=store,
    )

    assert [a.filename for a in result.attachments] == ["plan.pdf", "photo.png"]
    assert result.attachments[0].url == "/uploads/attachments/plan.pdf"
    assert result.attachments[0].size == 8
    assert store.put.call_count == 2


def test_fichier_non_autorise_aucun_envoi(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    store = _store()

    with pytest.raises(ValidationError):
        post_service.create_post(
            db_session, actor_of(db_session, direction),
            PostCreate(content="Annonce", type="GENERAL"),
            files=[IncomingFile("script.exe", "application/x-msdownload", b"MZ")], store=store,
        )

    store.put.assert_not_called()
    assert _count(db_session, Post) == 0


def test_echec_du_stockage_aucune_publication(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    store = MagicMock()
    store.put.side_effect = OSError("disque plein")

    with pytest.raises(UploadError):
        post_service.create_post(
            db_session, actor_of(db_session, direction),
            PostCreate(content="Annonce", type="GENERAL"),
            files=[IncomingFile("a.png", "image/png", b"data")], store=store,
        )
    assert _count(db_session, Post) == 0


def test_echec_de_transaction_supprime_les_fichiers_envoyes(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    actor = actor_of(db_session, direction)
    store = _store()
    files = [IncomingFile("a.png", "image/png", b"data"), IncomingFile("b.pdf", "application/pdf", b"pdf")]

    with patch.object(db_session, "commit", side_effect=SQLAlchemyError("panne")):
        with pytest.raises(SQLAlchemyError):
            post_service.create_post(
                db_session, actor, PostCreate(content="Annonce", type="GENERAL"), files=files, store=store,
            )

    deleted = sorted(c.args[0] for c in store.delete.call_args_list)
    assert deleted == ["attachments/a.png", "attachments/b.pdf"]
    assert _count(db_session, Post) == 0
    assert _count(db_session, Attachment) == 0


# --- list_posts ---

def test_pagination(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    base = datetime(2024, 1, 1, 8, 0)
    for i in range(5):
        make_post(db_session, direction, content=f"p{i}", created_at=base + timedelta(minutes=i))
    actor = actor_of(db_session, direction)

    page1 = post_service.list_posts(db_session, actor, page=1, limit=2)
    page3 = post_service.list_posts(db_session, actor, page=3, limit=2)

    assert [p.content for p in page1.posts] == ["p4", "p3"]
    assert page1.pagination.total == 5
    assert page1.pagination.total_pages == 3
    assert page1.pagination.has_more is True
    assert [p.content for p in page3.posts] == ["p0"]
    assert page3.pagination.has_more is False


def test_liste_vide(db_session):
    student = make_user(db_session, Role.STUDENT)
    result = post_service.list_posts(db_session, actor_of(db_session, student))
    assert result.posts == []
    assert result.pagination.total == 0
    assert result.pagination.total_pages == 0
    assert result.pagination.has_more is False


@pytest.mark.parametrize("page,limit,field", [(0, 20, "page"), (1, 0, "limit"), (1, 101, "limit")])
def test_pagination_invalide(db_session, page, limit, field):
    student = make_user(db_session, Role.STUDENT)
    with pytest.raises(ValidationError) as exc:
        post_service.list_posts(db_session, actor_of(db_session, student), page=page, limit=limit)
    assert exc.value.field == field


def test_ordre_epinglees_puis_recentes_puis_id(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    same_time = datetime(2024, 3, 1, 10, 0)
    old_pinned = make_post(db_session, direction, content="épinglée", is_pinned=True,
                           created_at=same_time - timedelta(days=30))
    first = make_post(db_session, direction, content="a", created_at=same_time)
    second = make_post(db_session, direction, content="b", created_at=same_time)
    newest = make_post(db_session, direction, content="c", created_at=same_time + timedelta(hours=1))

    result = post_service.list_posts(db_session, actor_of(db_session, direction))
    assert [p.id for p in result.posts] == [old_pinned.id, newest.id, first.id, second.id]


def test_annonce_urgente_epinglee_en_tete_de_tous_les_fils(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c1)
    student = make_user(db_session, Role.STUDENT, class_id=c2.id)
    parent = make_user(db_session, Role.PARENT)
    link_parent(db_session, parent, student)

    make_post(db_session, prof, content="Devoir", class_id=c1.id, created_at=datetime.now() + timedelta(hours=1))
    make_post(db_session, direction, content="Sortie", class_id=c2.id, created_at=datetime.now() + timedelta(hours=2))
    urgent = post_service.create_post(
        db_session, actor_of(db_session, direction),
        PostCreate(content="Fermeture exceptionnelle", type="URGENT", is_pinned=True),
    )

    for user in (direction, prof, student, parent):
        feed = post_service.list_posts(db_session, actor_of(db_session, user))
        assert feed.posts[0].id == urgent.id


def test_filtre_de_classe_pour_le_personnel(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    make_post(db_session, direction, class_id=c1.id)
    p2 = make_post(db_session, direction, class_id=c2.id)

    result = post_service.list_posts(db_session, actor_of(db_session, direction), class_id=c2.id)
    assert [p.id for p in result.posts] == [p2.id]


def test_likes_count_et_liked_by_me(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    post = make_post(db_session, direction)
    db_session.add_all([Like(post_id=post.id, user_id=direction.id), Like(post_id=post.id, user_id=parent.id)])
    db_session.commit()
    other_user = make_user(db_session, Role.STUDENT)

    for_parent = post_service.list_posts(db_session, actor_of(db_session, parent)).posts[0]
    for_other = post_service.list_posts(db_session, actor_of(db_session, other_user)).posts[0]

    assert for_parent.likes_count == 2
    assert for_parent.liked_by_me is True
    assert for_other.likes_count == 2
    assert for_other.liked_by_me is False


def test_list_pinned_posts_respecte_la_visibilite(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    pinned_global = make_post(db_session, direction, is_pinned=True)
    make_post(db_session, direction, is_pinned=True, class_id=c2.id)
    make_post(db_session, direction, class_id=c1.id)
    student = make_user(db_session, Role.STUDENT, class_id=c1.id)

    result = post_service.list_pinned_posts(db_session, actor_of(db_session, student))
    assert [p.id for p in result] == [pinned_global.id]


# --- get_post ---

def test_get_post_invisible_introuvable(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction, class_id=c2.id)
    student = make_user(db_session, Role.STUDENT, class_id=c1.id)

    with pytest.raises(NotFoundError):
        post_service.get_post(db_session, actor_of(db_session, student), post.id)


def test_get_post_inexistant(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(NotFoundError):
        post_service.get_post(db_session, actor_of(db_session, direction), 12345)


# --- update_post ---

def test_auteur_modifie_sa_publication(db_session):
    c1 = make_class(db_session)
    student = make_user(db_session, Role.STUDENT, class_id=c1.id)
    post = make_post(db_session, student, class_id=c1.id)

    result = post_service.update_post(
        db_session, actor_of(db_session, student), post.id, PostUpdate(content="Corrigé", type="ACTIVITE")
    )
    assert result.content == "Corrigé"
    assert result.type == "ACTIVITE"
    assert result.class_id == c1.id


def test_autre_utilisateur_ne_modifie_pas(db_session):
    author = make_user(db_session, Role.PROFESSOR)
    other = make_user(db_session, Role.PROFESSOR)
    post = make_post(db_session, author)

    with pytest.raises(ForbiddenError):
        post_service.update_post(db_session, actor_of(db_session, other), post.id, PostUpdate(content="Piraté"))


def test_direction_modifie_et_rend_globale(db_session):
    c1 = make_class(db_session)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c1)
    post = make_post(db_session, prof, class_id=c1.id)
    direction = make_user(db_session, Role.DIRECTION)

    result = post_service.update_post(
        db_session, actor_of(db_session, direction), post.id, PostUpdate(content="Pour tous", class_id=None)
    )
    assert result.class_id is None
    assert result.school_class is None


def test_class_id_absent_conserve_la_classe(db_session):
    c1 = make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction, class_id=c1.id)

    result = post_service.update_post(
        db_session, actor_of(db_session, direction), post.id, PostUpdate(content="Texte")
    )
    assert result.class_id == c1.id


def test_deplacement_vers_une_classe_non_enseignee_refuse(db_session):
    c1, c2 = make_class(db_session), make_class(db_session)
    prof = make_user(db_session, Role.PROFESSOR)
    assign_professor(db_session, prof, c1)
    post = make_post(db_session, prof, class_id=c1.id)

    with pytest.raises(ForbiddenError):
        post_service.update_post(
            db_session, actor_of(db_session, prof), post.id, PostUpdate(content="Texte", class_id=c2.id)
        )


def test_update_post_type_invalide(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction)
    with pytest.raises(ValidationError):
        post_service.update_post(
            db_session, actor_of(db_session, direction), post.id, PostUpdate(content="Texte", type="AUTRE")
        )


# --- delete_post ---

def test_suppression_en_cascade(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    post = make_post(db_session, direction)
    db_session.add_all([
        Comment(post_id=post.id, author_id=parent.id, content="Merci"),
        Like(post_id=post.id, user_id=parent.id),
        Attachment(post_id=post.id, url="/u/a.png", storage_key="a.png", filename="a.png",
                   mime_type="image/png", size=3),
    ])
    db_session.commit()

    post_service.delete_post(db_session, actor_of(db_session, direction), post.id)

    assert _count(db_session, Post) == 0
    assert _count(db_session, Comment) == 0
    assert _count(db_session, Like) == 0
    assert _count(db_session, Attachment) == 0


def test_suppression_par_un_tiers_refusee(db_session):
    author = make_user(db_session, Role.STUDENT)
    other = make_user(db_session, Role.PARENT)
    post = make_post(db_session, author)

    with pytest.raises(ForbiddenError):
        post_service.delete_post(db_session, actor_of(db_session, other), post.id)
    assert _count(db_session, Post) == 1


def test_suppression_inexistante(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(NotFoundError):
        post_service.delete_post(db_session, actor_of(db_session, direction), 404)


# --- toggle_pin ---

def test_direction_epingle_et_desepingle(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction)
    actor = actor_of(db_session, direction)

    assert post_service.toggle_pin(db_session, actor, post.id, True).is_pinned is True
    assert post_service.toggle_pin(db_session, actor, post.id, False).is_pinned is False


def test_auteur_non_direction_ne_peut_pas_epingler(db_session):
    prof = make_user(db_session, Role.PROFESSOR)
    post = make_post(db_session, prof)

    with pytest.raises(ForbiddenError):
        post_service.toggle_pin(db_session, actor_of(db_session, prof), post.id, True)


def test_toggle_pin_valeur_non_booleenne(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction)
    with pytest.raises(ValidationError):
        post_service.toggle_pin(db_session, actor_of(db_session, direction), post.id, "true")


def test_toggle_pin_inexistant(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    with pytest.raises(NotFoundError):
        post_service.toggle_pin(db_session, actor_of(db_session, direction), 999, True)


# --- create_comment ---

def test_commentaire_par_un_parent(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    post = make_post(db_session, direction)

    comment = post_service.create_comment(db_session, actor_of(db_session, parent), post.id, "  Merci !  ")
    assert comment.content == "Merci !"
    assert comment.author.id == parent.id
    assert comment.post_id == post.id


def test_commentaire_sur_publication_inexistante(db_session):
    parent = make_user(db_session, Role.PARENT)
    with pytest.raises(NotFoundError):
        post_service.create_comment(db_session, actor_of(db_session, parent), 999, "Merci")


@pytest.mark.parametrize("content", ["", "x" * 1001])
def test_commentaire_invalide(db_session, content):
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction)
    with pytest.raises(ValidationError):
        post_service.create_comment(db_session, actor_of(db_session, direction), post.id, content)


def test_commentaires_dans_l_ordre_chronologique(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    post = make_post(db_session, direction)
    actor = actor_of(db_session, direction)
    post_service.create_comment(db_session, actor, post.id, "premier")
    post_service.create_comment(db_session, actor, post.id, "second")
    db_session.expire_all()

    result = post_service.get_post(db_session, actor, post.id)
    assert [c.content for c in result.comments] == ["premier", "second"]


# --- toggle_like ---

def test_like_bascule(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    post = make_post(db_session, direction)
    actor = actor_of(db_session, parent)

    first = post_service.toggle_like(db_session, actor, post.id)
    second = post_service.toggle_like(db_session, actor, post.id)

    assert (first.liked, first.likes_count) == (True, 1)
    assert (second.liked, second.likes_count) == (False, 0)


def test_like_au_plus_une_ligne_par_utilisateur(db_session):
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    post = make_post(db_session, direction)
    actor = actor_of(db_session, parent)

    for _ in range(3):
        post_service.toggle_like(db_session, actor, post.id)

    assert _count(db_session, Like) == 1


def test_like_publication_inexistante(db_session):
    parent = make_user(db_session, Role.PARENT)
    with pytest.raises(NotFoundError):
        post_service.toggle_like(db_session, actor_of(db_session, parent), 999)


def test_like_et_commentaire_sur_publication_invisible(db_session):
    """Un élève ne peut ni aimer ni commenter une publication d'une autre classe."""
    c1, c2 = make_class(db_session), make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    student = make_user(db_session, Role.STUDENT, class_id=c1.id)
    post = make_post(db_session, direction, class_id=c2.id)
    actor = actor_of(db_session, student)

    with pytest.raises(NotFoundError):
        post_service.toggle_like(db_session, actor, post.id)
    with pytest.raises(NotFoundError):
        post_service.create_comment(db_session, actor, post.id, "Bonjour")

    assert _count(db_session, Like) == 0
    assert _count(db_session, Comment) == 0


def test_parent_aime_et_commente_la_classe_de_son_enfant(db_session):
    school_class = make_class(db_session)
    direction = make_user(db_session, Role.DIRECTION)
    parent = make_user(db_session, Role.PARENT)
    link_parent(db_session, parent, make_user(db_session, Role.STUDENT, class_id=school_class.id))
    post = make_post(db_session, direction, class_id=school_class.id)
    actor = actor_of(db_session, parent)

    assert post_service.toggle_like(db_session, actor, post.id).liked is True
    assert post_service.create_comment(db_session, actor, post.id, "Merci").post_id == post.id
