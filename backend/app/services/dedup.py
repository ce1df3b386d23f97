"""
Résolution des doublons : décide si un test soumis existe déjà en base.

Clé d'identité, par ordre de priorité :
  1. (portée, clientRecordId)  — clé d'idempotence générée par le client au moment du test
  2. (portée, capturedAt)      — timestamp exact du test, approximation de l'idempotence
Sans l'un ni l'autre, l'enregistrement est considéré comme jamais vu (toujours inséré) :
une re-soumission créera un doublon. Les clients doivent générer un clientRecordId.

La portée est l'agent soumetteur (chaque agent a son propre espace d'idempotence),
sauf pour les capteurs ESP32 qui n'ont pas d'agent : la portée est alors le numéro de série.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from app.models.test_record import TestRecord
from app.schemas.sync import DEVICE_SOURCE, RecordSubmission


@dataclass(frozen=True)
class IdentityKey:
    scope: str    # "officer:<uuid>" ou "device:<serial>"
    kind: str     # "client" ou "captured"
    value: str

    def __str__(self) -> str:
        return f"{self.scope}:{self.kind}:{self.value}"


def derive_identity_key(
    submission: RecordSubmission,
    officer_id: uuid.UUID,
) -> Optional[IdentityKey]:
    """Retourne la clé d'identité du test, ou None s'il n'a ni clientRecordId ni capturedAt."""
    if submission.source == DEVICE_SOURCE:
        scope = f"device:{submission.device_serial}"
    else:
        scope = f"officer:{officer_id}"

    if submission.client_record_id:
        return IdentityKey(scope, "client", submission.client_record_id)
    if submission.captured_at is not None:
        return IdentityKey(scope, "captured", submission.captured_at.isoformat(timespec="microseconds"))
    return None


def find_existing(store, key: Optional[IdentityKey]) -> Optional[TestRecord]:
    """Cherche un test déjà persisté pour cette clé. Une clé absente ne correspond à rien."""
    if key is None:
        return None
    return store.find_by_identity_key(str(key))
