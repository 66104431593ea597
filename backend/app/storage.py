"""
Stockage binaire des pièces jointes.

Le cœur ne dépend que de l'interface ObjectStore (put / delete) ;
LocalObjectStore écrit les fichiers sur disque, servis sous UPLOAD_BASE_URL.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from werkzeug.utils import secure_filename

from app.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    key: str
    url: str
    size: int


class ObjectStore(ABC):
    @abstractmethod
    def put(self, data: bytes, filename: str, content_type: str) -> StoredObject:
        """Stocke les octets et retourne une référence stable."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Supprime un objet ; sans effet s'il n'existe plus."""


def make_object_key(filename: str, folder: str = "attachments") -> str:
    """Clé unique : dossier/horodatage_aléa_nom-assaini."""
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    sanitized = secure_filename(Path(filename).name) or "file"
    return f"{folder}/{timestamp}_{uuid.uuid4().hex[:8]}_{sanitized}"


class LocalObjectStore(ObjectStore):
    def __init__(self, root: str, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def put(self, data: bytes, filename: str, content_type: str) -> StoredObject:
        key = make_object_key(filename)
        file_path = self.root / key
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "wb") as buffer:
            buffer.write(data)
        logger.debug("Fichier stocké : %s (%d octets, %s)", key, len(data), content_type)
        return StoredObject(key=key, url=f"{self.base_url}/{key}", size=len(data))

    def delete(self, key: str) -> None:
        (self.root / key).unlink(missing_ok=True)


def get_object_store() -> ObjectStore:
    """Dépendance FastAPI : stockage configuré par UPLOAD_DIR / UPLOAD_BASE_URL."""
    return LocalObjectStore(settings.UPLOAD_DIR, settings.UPLOAD_BASE_URL)
