"""
Schémas Pydantic pour la synchronisation offline → online des tests d'alcoolémie.
Endpoint : POST /api/sync

Les noms de champs sont en camelCase sur le fil (app mobile, capteurs ESP32)
et en snake_case côté Python.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.config import settings

VALID_GENDERS = {"Male", "Female", "Other"}
VALID_SOURCES = {"mobile_app", "esp32", "mobile_app_offline_sync"}
DEFAULT_SOURCE = "mobile_app_offline_sync"
DEVICE_SOURCE = "esp32"
LIVE_SOURCE = "mobile_app"

# Statuts d'un enregistrement dans le rapport de synchronisation
RESULT_CREATED = "created"
RESULT_ALREADY_SYNCED = "already_synced"
RESULT_REJECTED = "rejected"
RESULT_FAILED = "failed"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RecordSubmission(CamelModel):
    """Test validé et normalisé (chaînes nettoyées, taux décimal à précision fixe)."""

    id_number: str
    gender: str
    subject_identifier: str
    number_plate: str
    alcohol_level: Decimal
    location: str
    device_serial: str
    notes: Optional[str] = None
    photo: Optional[str] = None                   # base64 ou URL
    captured_at: Optional[datetime] = None        # UTC, microsecondes
    client_record_id: Optional[str] = None        # Clé d'idempotence générée par le client
    source: str = DEFAULT_SOURCE


class ValidationResult(BaseModel):
    """Résultat du validateur : soit un enregistrement normalisé, soit (champ, motif)."""

    submission: Optional[RecordSubmission] = None
    field: Optional[str] = None
    reason: Optional[str] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.submission is not None


class SyncRequest(BaseModel):
    """
    Enveloppe de la requête batch. Seule la forme de l'enveloppe est validée ici
    (records présent et tableau) : chaque élément, objet ou non, est validé
    individuellement par le service, pour qu'un enregistrement malformé ne rejette
    pas tout le batch.
    """

    records: List[Any]

    @field_validator("records")
    @classmethod
    def records_not_too_large(cls, v: List[Any]) -> List[Any]:
        if len(v) > settings.MAX_BATCH_SIZE:
            raise ValueError(f"Batch too large: at most {settings.MAX_BATCH_SIZE} records per request.")
        return v


class SyncError(CamelModel):
    """Échec d'un enregistrement du batch."""

    record_id: str
    error: str
    field: Optional[str] = None
    reason: Optional[str] = None                  # code du validateur (missing_field, out_of_range...)
    retryable: bool = False


class RecordResult(CamelModel):
    """Issue d'un enregistrement, dans l'ordre d'entrée du batch."""

    record_id: str
    status: str                                   # created, already_synced, rejected, failed
    test_record_id: Optional[str] = None          # id serveur si created / already_synced
    field: Optional[str] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    retryable: bool = False


class SyncSummary(CamelModel):
    """Rapport de synchronisation retourné par le serveur."""

    success: bool = True
    message: str = ""
    synced_count: int = Field(0, alias="synced")            # nouveaux + déjà présents
    total_submitted: int = Field(0, alias="totalProcessed")
    errors: List[SyncError] = []
    results: List[RecordResult] = []
