"""
Passerelle vers le stock des tests d'alcoolémie (PostgreSQL via SQLAlchemy).

Contrat utilisé par le service de synchronisation :
- find_by_identity_key(key) reflète toutes les insertions réussies faites via la même session
- insert(record) est durable (commit) avant de rendre la main ; chaque insertion est sa propre transaction
- un conflit sur identity_key lève DuplicateKeyError (course entre deux soumissions de la même clé)
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.test_record import TestRecord

logger = logging.getLogger(__name__)

IDENTITY_KEY_CONSTRAINT = "identity_key"


class StoreError(Exception):
    """Erreur de la passerelle de stockage."""

    retryable = False


class DuplicateKeyError(StoreError):
    """Un test avec la même clé d'identité a déjà été inséré."""


class StoreUnavailableError(StoreError):
    """Échec transitoire (connexion, timeout) : le batch peut être re-soumis."""

    retryable = True


class StoreInvariantError(StoreError):
    """Contrainte violée sans lien avec la clé d'identité : pas de re-essai automatique."""


def _is_identity_conflict(exc: IntegrityError) -> bool:
    return IDENTITY_KEY_CONSTRAINT in str(exc.orig)


def _translate(exc: Exception) -> StoreError:
    """Traduit une erreur levée par la session en erreur de la passerelle."""
    if isinstance(exc, OperationalError):
        return StoreUnavailableError(f"Store unavailable: {exc.orig}")
    if isinstance(exc, DBAPIError):
        return StoreInvariantError(f"Database error: {exc.orig}")
    return StoreInvariantError(f"Store error: {exc}")


class RecordStore:
    """
    Accès aux tests persistés pour une session donnée.
    Toute erreur annule la transaction en cours : la session reste utilisable
    pour les enregistrements suivants du batch.
    """

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, exc: Exception) -> StoreError:
        logger.warning("Transaction annulée après erreur : %s", exc)
        self.db.rollback()
        return _translate(exc)

    def _read(self, stmt):
        try:
            return self.db.execute(stmt)
        except SQLAlchemyError as exc:
            raise self._fail(exc) from exc

    def find_by_identity_key(self, key: str) -> Optional[TestRecord]:
        return self._read(select(TestRecord).where(TestRecord.identity_key == key)).scalar()

    def insert(self, record: TestRecord) -> TestRecord:
        """Insère et commite le test. Annule la transaction en cas d'échec."""
        self.db.add(record)
        try:
            self.db.commit()
            self.db.refresh(record)
        except IntegrityError as exc:
            self.db.rollback()
            if _is_identity_conflict(exc):
                raise DuplicateKeyError(record.identity_key) from exc
            raise StoreInvariantError(f"Constraint violation: {exc.orig}") from exc
        except Exception as exc:
            # Erreurs hors DBAPI (ex. ValueError du pilote pendant le flush) incluses
            raise self._fail(exc) from exc
        return record

    def get(self, record_id: uuid.UUID) -> Optional[TestRecord]:
        return self._read(select(TestRecord).where(TestRecord.id == record_id)).scalar()

    def list_unsynced(self, officer_id: uuid.UUID) -> List[TestRecord]:
        """Tests de l'agent pas encore marqués comme synchronisés, du plus récent au plus ancien."""
        return list(self._read(
            select(TestRecord)
            .where(TestRecord.officer_id == officer_id, TestRecord.synced.is_(False))
            .order_by(TestRecord.captured_at.desc())
        ).scalars().all())

    def list_recent(self, officer_id: uuid.UUID, limit: int) -> List[TestRecord]:
        return list(self._read(
            select(TestRecord)
            .where(TestRecord.officer_id == officer_id)
            .order_by(TestRecord.captured_at.desc())
            .limit(limit)
        ).scalars().all())

    def mark_receipt_printed(self, record: TestRecord) -> TestRecord:
        """Passe receipt_printed à True. Sans effet si c'est déjà le cas (irréversible ici)."""
        if record.receipt_printed:
            return record
        record.receipt_printed = True
        try:
            self.db.commit()
            self.db.refresh(record)
        except Exception as exc:
            raise self._fail(exc) from exc
        return record
