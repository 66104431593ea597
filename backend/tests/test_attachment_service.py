"""
Tests de l'ingestion des pièces jointes et du stockage local.
"""

from unittest.mock import MagicMock

import pytest

from app.config import settings
from app.exceptions import UploadError, ValidationError
from app.services.attachment_service import (
    IncomingFile,
    StoredAttachment,
    discard_files,
    is_allowed_mime_type,
    store_files,
    validate_files,
)
from app.storage import LocalObjectStore, StoredObject, make_object_key


@pytest.mark.parametrize("content_type,expected", [
    ("image/png", True),
    ("image/jpeg", True),
    ("application/pdf", True),
    ("application/zip", False),
    ("text/html", False),
    ("", False),
    (None, False),
])
def test_is_allowed_mime_type(content_type, expected):
    assert is_allowed_mime_type(content_type) is expected


def test_validate_files_trop_de_fichiers():
    files = [IncomingFile(f"{i}.png", "image/png", b"x") for i in range(settings.MAX_UPLOAD_FILES + 1)]
    with pytest.raises(ValidationError) as exc:
        validate_files(files)
    assert exc.value.field == "files"


def test_validate_files_trop_volumineux():
    big = IncomingFile("big.pdf", "application/pdf", b"x" * (settings.MAX_UPLOAD_SIZE + 1))
    with pytest.raises(ValidationError):
        validate_files([big])


def test_validate_files_fichier_vide():
    with pytest.raises(ValidationError):
        validate_files([IncomingFile("vide.png", "image/png", b"")])


def test_validate_files_accepte_la_limite():
    files = [IncomingFile(f"{i}.png", "image/png", b"x") for i in range(settings.MAX_UPLOAD_FILES)]
    validate_files(files)


def test_store_files_retourne_les_references():
    store = MagicMock()
    store.put.return_value = StoredObject(key="attachments/k.png", url="/uploads/attachments/k.png", size=4)

    stored = store_files(store, [IncomingFile("photo.png", "image/png", b"data")])

    assert stored == [StoredAttachment(
        filename="photo.png", mime_type="image/png", size=4,
        url="/uploads/attachments/k.png", storage_key="attachments/k.png",
    )]


def test_store_files_echec_partiel_supprime_le_lot():
    store = MagicMock()
    store.put.side_effect = [
        StoredObject(key="attachments/a.png", url="/uploads/attachments/a.png", size=1),
        OSError("disque plein"),
    ]
    files = [IncomingFile("a.png", "image/png", b"a"), IncomingFile("b.png", "image/png", b"b")]

    with pytest.raises(UploadError):
        store_files(store, files)
    store.delete.assert_called_once_with("attachments/a.png")


def test_discard_files_continue_malgre_une_erreur():
    store = MagicMock()
    store.delete.side_effect = [OSError("absent"), None]
    stored = [
        StoredAttachment("a.png", "image/png", 1, "/u/a", "attachments/a.png"),
        StoredAttachment("b.png", "image/png", 1, "/u/b", "attachments/b.png"),
    ]

    discard_files(store, stored)
    assert store.delete.call_count == 2


# --- LocalObjectStore ---

def test_make_object_key_assainit_le_nom():
    key = make_object_key("../../bulletin scolaire (1).pdf")
    assert key.startswith("attachments/")
    assert key.count("/") == 1
    assert key.endswith("bulletin_scolaire_1.pdf")


@pytest.mark.parametrize("filename", ["???", "..", "../../"])
def test_make_object_key_nom_vide_apres_assainissement(filename):
    key = make_object_key(filename)
    assert key.startswith("attachments/")
    assert key.count("/") == 1
    assert key.endswith("_file")


def test_local_store_ecrit_puis_supprime(tmp_path):
    store = LocalObjectStore(str(tmp_path), "/uploads/")

    obj = store.put(b"%PDF", "plan.pdf", "application/pdf")

    path = tmp_path / obj.key
    assert path.read_bytes() == b"%PDF"
    assert obj.size == 4
    assert obj.url == f"/uploads/{obj.key}"

    store.delete(obj.key)
    assert not path.exists()
    store.delete(obj.key)
