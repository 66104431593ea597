"""
Ingestion des pièces jointes : validation puis envoi au stockage binaire.

L'envoi a lieu avant l'écriture en base, hors transaction. Les services appelants
suppriment les objets envoyés (discard_files) si la transaction échoue ensuite.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.config import settings
from app.exceptions import UploadError, ValidationError
from app.storage import ObjectStore, StoredObject

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class IncomingFile:
    filename: str
    content_type: str
    data: bytes


@dataclass(frozen=True)
class StoredAttachment:
    filename: str
    mime_type: str
    size: int
    url: str
    storage_key: str


def is_allowed_mime_type(content_type: Optional[str]) -> bool:
    return bool(content_type) and (content_type.startswith("image/") or content_type == PDF_MIME_TYPE)


def validate_files(files: list[IncomingFile]) -> None:
    """Images et PDF uniquement, taille et nombre de fichiers plafonnés."""
    if len(files) > settings.MAX_UPLOAD_FILES:
        raise ValidationError(
            f"Maximum {settings.MAX_UPLOAD_FILES} fichiers par envoi.", field="files"
        )
    for f in files:
        if not is_allowed_mime_type(f.content_type):
            raise ValidationError(
                f"Type de fichier non autorisé : {f.filename} (images et PDF uniquement).",
                field="files",
            )
        if not f.data:
            raise ValidationError(f"Fichier vide : {f.filename}.", field="files")
        if len(f.data) > settings.MAX_UPLOAD_SIZE:
            raise ValidationError(
                f"Fichier trop volumineux : {f.filename} (maximum {settings.MAX_UPLOAD_SIZE // (1024 * 1024)} Mo).",
                field="files",
            )


def store_files(store: ObjectStore, files: list[IncomingFile]) -> list[StoredAttachment]:
    """
    Valide puis envoie chaque fichier au stockage.
    En cas d'échec, les fichiers déjà envoyés dans ce lot sont supprimés et UploadError est levée.
    """
    validate_files(files)
    stored: list[StoredAttachment] = []
    for f in files:
        try:
            obj: StoredObject = store.put(f.data, f.filename, f.content_type)
        except Exception as exc:
            logger.error("Échec de l'envoi de %s : %s", f.filename, exc, exc_info=True)
            discard_files(store, stored)
            raise UploadError() from exc
        stored.append(StoredAttachment(
            filename=f.filename,
            mime_type=f.content_type,
            size=obj.size,
            url=obj.url,
            storage_key=obj.key,
        ))
    return stored


def discard_files(store: ObjectStore, stored: list[StoredAttachment]) -> None:
    """Suppression compensatoire des objets orphelins (écriture en base échouée)."""
    for attachment in stored:
        try:
            store.delete(attachment.storage_key)
        except Exception as exc:
            logger.warning("Objet orphelin non supprimé %s : %s", attachment.storage_key, exc)
    if stored:
        logger.warning("%d pièce(s) jointe(s) supprimée(s) après échec d'écriture", len(stored))
