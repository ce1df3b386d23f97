"""
Service de synchronisation offline → online des tests d'alcoolémie.

Stratégie : append-only idempotent
- Chaque enregistrement est traité indépendamment, dans l'ordre d'entrée :
  validation → recherche de doublon → barème → insertion
- Idempotence via la clé d'identité (clientRecordId ou capturedAt) : un test déjà
  connu compte comme synchronisé, sans erreur ni modification
- Chaque insertion est commitée seule : pas de transaction sur tout le batch,
  un échec n'annule jamais les enregistrements voisins
- Aucune exception ne sort de sync_batch : tout échec devient une entrée du rapport
- Pas de re-essai interne : le client re-soumet le batch complet, sans risque de doublon
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from app.models.test_record import TestRecord
from app.schemas.sync import (
    DEFAULT_SOURCE,
    LIVE_SOURCE,
    RESULT_ALREADY_SYNCED,
    RESULT_CREATED,
    RESULT_FAILED,
    RESULT_REJECTED,
    RecordResult,
    RecordSubmission,
    SyncError,
    SyncSummary,
)
from app.services.adjudication import adjudicate
from app.services.dedup import IdentityKey, derive_identity_key, find_existing
from app.services.record_store import DuplicateKeyError, RecordStore, StoreError
from app.services.validation import validate

logger = logging.getLogger(__name__)


def record_ref(raw: Any, index: int) -> str:
    """Référence renvoyée au client pour corréler les résultats : clientRecordId, capturedAt ou position."""
    if isinstance(raw, dict):
        for name in ("clientRecordId", "capturedAt"):
            value = raw.get(name)
            if value is None or isinstance(value, bool):
                continue
            if str(value).strip():
                return str(value).strip()
    return f"#{index}"


def build_record(
    submission: RecordSubmission,
    officer_id: uuid.UUID,
    key: Optional[IdentityKey],
) -> TestRecord:
    """Construit le test à persister. Statut et amende sont toujours recalculés ici."""
    status, fine_amount = adjudicate(submission.alcohol_level)
    now = datetime.now(timezone.utc)
    return TestRecord(
        id=uuid.uuid4(),
        identity_key=str(key) if key is not None else None,
        client_record_id=submission.client_record_id,
        id_number=submission.id_number,
        gender=submission.gender,
        subject_identifier=submission.subject_identifier,
        number_plate=submission.number_plate,
        officer_id=officer_id,
        device_serial=submission.device_serial,
        source=submission.source,
        alcohol_level=submission.alcohol_level,
        status=status,
        fine_amount=fine_amount,
        location=submission.location,
        notes=submission.notes,
        photo=submission.photo,
        synced=True,
        receipt_printed=False,
        captured_at=submission.captured_at or now,
        created_at=now,
    )


def _sync_one(
    store: RecordStore,
    officer_id: uuid.UUID,
    raw: Any,
    ref: str,
    default_source: str,
) -> Tuple[RecordResult, Optional[TestRecord]]:
    """Traite un enregistrement. Les erreurs de stockage sont levées, la validation non."""
    # 1. Validation
    validation = validate(raw, default_source=default_source)
    if not validation.ok:
        logger.warning("Enregistrement %s rejeté (%s) : %s", ref, validation.reason, validation.message)
        return RecordResult(
            record_id=ref,
            status=RESULT_REJECTED,
            field=validation.field,
            reason=validation.reason,
            error=validation.message,
        ), None
    submission = validation.submission

    # 2. Doublon (re-soumission d'un batch déjà traité)
    key = derive_identity_key(submission, officer_id)
    existing = find_existing(store, key)
    if existing is not None:
        logger.debug("Clé %s déjà synchronisée, ignorée", key)
        return RecordResult(
            record_id=ref, status=RESULT_ALREADY_SYNCED, test_record_id=str(existing.id),
        ), existing

    # 3. Barème + insertion
    record = build_record(submission, officer_id, key)
    try:
        saved = store.insert(record)
    except DuplicateKeyError:
        # Course avec une soumission concurrente de la même clé : déjà synchronisé
        logger.debug("Conflit d'insertion sur %s, compté comme déjà synchronisé", key)
        winner = find_existing(store, key)
        return RecordResult(
            record_id=ref,
            status=RESULT_ALREADY_SYNCED,
            test_record_id=str(winner.id) if winner is not None else None,
        ), winner
    return RecordResult(record_id=ref, status=RESULT_CREATED, test_record_id=str(saved.id)), saved


def _process(
    store: RecordStore,
    officer_id: uuid.UUID,
    raw: Any,
    ref: str,
    default_source: str,
) -> Tuple[RecordResult, Optional[TestRecord]]:
    """_sync_one dont toute exception est convertie en résultat « failed »."""
    try:
        return _sync_one(store, officer_id, raw, ref, default_source)
    except StoreError as exc:
        logger.error("Échec de stockage pour %s : %s", ref, exc)
        return RecordResult(
            record_id=ref, status=RESULT_FAILED, error=str(exc), retryable=exc.retryable,
        ), None
    except Exception as exc:
        logger.exception("Erreur inattendue pour l'enregistrement %s", ref)
        return RecordResult(
            record_id=ref, status=RESULT_FAILED, error=str(exc) or exc.__class__.__name__,
        ), None


def submit_record(
    store: RecordStore,
    officer_id: Optional[uuid.UUID],
    raw: Any,
) -> Tuple[RecordResult, Optional[TestRecord]]:
    """
    Enregistre un test envoyé en direct (app mobile connectée, capteur ESP32).

    Même chaîne que la synchronisation : validation → doublon → barème → insertion.
    Un test sans `source` est tagué mobile_app. Retourne le résultat et le test
    persisté (nouveau ou déjà présent), None si rejeté ou en échec.

    Lève ValueError si l'identité de l'agent manque.
    """
    if officer_id is None:
        raise ValueError("Officer identity is required.")
    result, record = _process(store, officer_id, raw, record_ref(raw, 0), LIVE_SOURCE)
    logger.info("Test direct agent=%s : %s", officer_id, result.status)
    return result, record


def sync_batch(
    store: RecordStore,
    officer_id: Optional[uuid.UUID],
    records: List[Any],
) -> SyncSummary:
    """
    Synchronise un batch de tests capturés hors-ligne pour l'agent authentifié.

    Pour chaque enregistrement, dans l'ordre :
    1. Valide et normalise (rejet → entrée d'erreur, le stock n'est pas touché)
    2. Cherche la clé d'identité en base (trouvée → déjà synchronisé, compté comme succès)
    3. Calcule statut et amende, puis insère (synced=True)
    4. Échec de stockage → entrée d'erreur avec indication de re-essai, sans re-essai ici

    Lève ValueError si l'identité de l'agent manque ou si `records` n'est pas une liste :
    ces erreurs concernent tout l'appel et sont signalées avant tout traitement.
    """
    if officer_id is None:
        raise ValueError("Officer identity is required.")
    if not isinstance(records, list):
        raise ValueError("Invalid data format. Expected an array of records.")

    if not records:
        return SyncSummary(message="No records provided for sync.")

    results: List[RecordResult] = []
    errors: List[SyncError] = []

    for index, raw in enumerate(records):
        result, _ = _process(store, officer_id, raw, record_ref(raw, index), DEFAULT_SOURCE)
        results.append(result)
        if result.status in (RESULT_REJECTED, RESULT_FAILED):
            errors.append(SyncError(
                record_id=result.record_id,
                error=result.error,
                field=result.field,
                reason=result.reason,
                retryable=result.retryable,
            ))

    synced = sum(1 for r in results if r.status in (RESULT_CREATED, RESULT_ALREADY_SYNCED))
    created = sum(1 for r in results if r.status == RESULT_CREATED)

    logger.info(
        "Sync agent=%s : %d reçus, %d insérés, %d déjà présents, %d erreurs",
        officer_id, len(records), created, synced - created, len(errors),
    )

    return SyncSummary(
        message=f"Sync completed: {synced} of {len(records)} records synced.",
        synced_count=synced,
        total_submitted=len(records),
        errors=errors,
        results=results,
    )
