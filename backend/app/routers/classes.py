"""
Router pour la gestion des classes (direction).
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import require_roles
from app.models.user import Role
from app.schemas.user import ClassCreate, ClassResponse
from app.services import class_service
from app.services.identity_service import Actor

router = APIRouter(prefix="/api/classes", tags=["Classes"])

direction_only = require_roles(Role.DIRECTION)


@router.post("", response_model=ClassResponse, status_code=201, summary="Créer une classe")
def create_class(data: ClassCreate, actor: Actor = Depends(direction_only), db: Session = Depends(get_db)):
    """Crée une nouvelle classe avec un nom unique."""
    return class_service.create_class(db, data)


@router.get("", response_model=List[ClassResponse], summary="Lister les classes")
def list_classes(actor: Actor = Depends(direction_only), db: Session = Depends(get_db)):
    """Retourne toutes les classes avec leur nombre d'élèves et de professeurs."""
    return class_service.get_classes(db)


@router.delete("/{class_id}/professors/{professor_id}", status_code=204, summary="Retirer un professeur")
def remove_professor(
    class_id: int,
    professor_id: int,
    actor: Actor = Depends(direction_only),
    db: Session = Depends(get_db),
):
    success = class_service.remove_professor_class(db, professor_id, class_id)
    if not success:
        raise HTTPException(status_code=404, detail="Lien classe-professeur introuvable.")
