"""
Router pour la synchronisation offline → online des tests d'alcoolémie.
Reçoit les tests capturés hors-ligne (app mobile, capteurs ESP32) et les insère avec idempotence.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_officer_id, get_record_store
from app.schemas.sync import SyncRequest, SyncSummary
from app.schemas.test_record import TestRecordResponse
from app.services import sync_service, test_record_service
from app.services.record_store import RecordStore, StoreUnavailableError

router = APIRouter(prefix="/api/sync", tags=["Synchronisation offline"])


@router.post(
    "",
    response_model=SyncSummary,
    summary="Synchroniser les tests capturés hors-ligne",
)
def sync_records(
    data: SyncRequest,
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """
    Reçoit un batch de tests générés hors-ligne et les insère en base.

    Comportement :
    - Idempotent : un test dont la clé d'identité est déjà connue compte comme synchronisé (pas d'erreur)
    - Un enregistrement invalide ou en échec n'interrompt jamais le batch
    - Statut légal et amende recalculés côté serveur, jamais repris du client
    - Retourne le rapport : synced / totalProcessed / errors, et un résultat par enregistrement
      dans l'ordre d'envoi

    Retourne 401 sans identité d'agent, 422 si l'enveloppe est malformée.
    """
    try:
        return sync_service.sync_batch(store, officer_id, data.records)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get(
    "/unsynced",
    response_model=List[TestRecordResponse],
    summary="Lister les tests de l'agent non synchronisés",
)
def get_unsynced_records(
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """Tests de l'agent marqués synced=False, du plus récent au plus ancien."""
    try:
        return test_record_service.list_unsynced(store, officer_id)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
