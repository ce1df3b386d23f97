"""
Routers pour la création, la consultation des tests persistés et le marquage des reçus imprimés.
"""

import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Response

from app.config import settings
from app.dependencies import get_officer_id, get_record_store
from app.schemas.sync import RESULT_ALREADY_SYNCED, RESULT_FAILED, RESULT_REJECTED
from app.schemas.test_record import TestRecordResponse
from app.services import sync_service, test_record_service
from app.services.record_store import RecordStore, StoreUnavailableError

router = APIRouter(prefix="/api/v1/tests", tags=["Tests d'alcoolémie"])


@router.post(
    "",
    response_model=TestRecordResponse,
    status_code=201,
    summary="Enregistrer un test en direct",
)
def create_record(
    response: Response,
    payload: Dict[str, Any] = Body(...),
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """
    Enregistre un test capturé en ligne (même validation, même barème que /api/sync).

    Retourne 201 avec le test créé, 200 avec le test existant si sa clé d'identité
    est déjà connue, 422 avec (field, reason) si un contrôle échoue, 503 si la base
    est indisponible.
    """
    result, record = sync_service.submit_record(store, officer_id, payload)

    if result.status == RESULT_REJECTED:
        raise HTTPException(
            status_code=422,
            detail={"field": result.field, "reason": result.reason, "error": result.error},
        )
    if result.status == RESULT_FAILED:
        raise HTTPException(status_code=503 if result.retryable else 500, detail=result.error)
    if record is None:
        raise HTTPException(status_code=409, detail="Test déjà enregistré par une requête concurrente.")
    if result.status == RESULT_ALREADY_SYNCED:
        response.status_code = 200
    return record


@router.get("", response_model=List[TestRecordResponse], summary="Derniers tests de l'agent")
def list_recent_records(
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """Retourne les derniers tests de l'agent (RECENT_RECORDS_LIMIT), du plus récent au plus ancien."""
    try:
        return test_record_service.list_recent(store, officer_id, settings.RECENT_RECORDS_LIMIT)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/{record_id}", response_model=TestRecordResponse, summary="Détail d'un test")
def get_record(
    record_id: uuid.UUID,
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """Retourne 404 si le test est introuvable ou appartient à un autre agent, 503 si la base est indisponible."""
    try:
        return test_record_service.get_record(store, officer_id, record_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/{record_id}/receipt-printed",
    response_model=TestRecordResponse,
    summary="Marquer le reçu d'un test comme imprimé",
)
def mark_receipt_printed(
    record_id: uuid.UUID,
    officer_id: uuid.UUID = Depends(get_officer_id),
    store: RecordStore = Depends(get_record_store),
):
    """
    Passe receiptPrinted à true. Un second appel est sans effet.
    Il n'existe pas d'opération inverse sur cette API.

    Retourne 404 si le test est introuvable, 503 si la base est indisponible.
    """
    try:
        return test_record_service.mark_receipt_printed(store, officer_id, record_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
