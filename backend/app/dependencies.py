"""
Dépendances FastAPI partagées : stock des tests et identité de l'agent.

L'authentification est faite en amont (passerelle) : l'identifiant de l'agent
arrive dans l'en-tête configuré par OFFICER_HEADER et est pris tel quel.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.record_store import RecordStore


def get_record_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


def get_officer_id(
    officer_id: Optional[str] = Header(default=None, alias=settings.OFFICER_HEADER),
) -> uuid.UUID:
    """Retourne l'identité de l'agent authentifié. 401 si elle est absente ou illisible."""
    if not officer_id or not officer_id.strip():
        raise HTTPException(status_code=401, detail="Identité de l'agent manquante.")
    try:
        return uuid.UUID(officer_id.strip())
    except ValueError:
        raise HTTPException(status_code=401, detail="Identité de l'agent invalide.")
