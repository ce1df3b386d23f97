"""
Barème légal : statut et amende dérivés du taux d'alcool mesuré (mg/L).

Fonction pure, appliquée à l'identique quelle que soit la source (app mobile,
capteur ESP32, sync offline). Le statut et l'amende envoyés par un client ne
sont jamais repris.

| Taux (mg/L)   | Statut   | Amende |
|---------------|----------|--------|
| <= 0.08       | normal   | 0      |
| ]0.08, 0.15]  | exceeded | 500    |
| ]0.15, 0.30]  | exceeded | 1000   |
| > 0.30        | exceeded | 2000   |
"""

from decimal import Decimal
from typing import NamedTuple, Optional, Union

from app.schemas.test_record import FineSchedule, FineTier

STATUS_NORMAL = "normal"
STATUS_EXCEEDED = "exceeded"
STATUS_INVALID = "invalid"

LEGAL_LIMIT = Decimal("0.08")
MIN_LEVEL = Decimal("0")
MAX_LEVEL = Decimal("1.0")

# (borne haute incluse, statut, amende) — le dernier palier n'a pas de borne haute
FINE_SCHEDULE = (
    (LEGAL_LIMIT, STATUS_NORMAL, 0),
    (Decimal("0.15"), STATUS_EXCEEDED, 500),
    (Decimal("0.30"), STATUS_EXCEEDED, 1000),
    (None, STATUS_EXCEEDED, 2000),
)


class Adjudication(NamedTuple):
    status: str
    fine_amount: int


def _as_decimal(level: Union[Decimal, float, int, str]) -> Decimal:
    if isinstance(level, Decimal):
        return level
    # str() évite d'hériter de l'imprécision binaire du float (0.08 → 0.08000000000000000166)
    return Decimal(str(level))


def adjudicate(level: Union[Decimal, float, int, str]) -> Adjudication:
    """
    Retourne (statut, amende) pour un taux déjà validé dans [0, 1].
    Les bornes appartiennent au palier inférieur : 0.08 → normal, 0.15 → 500.
    """
    value = _as_decimal(level)
    for upper, status, fine in FINE_SCHEDULE:
        if upper is None or value <= upper:
            return Adjudication(status, fine)
    raise AssertionError("unreachable: the last tier has no upper bound")


def fine_schedule() -> FineSchedule:
    """Barème publié pour les collaborateurs (reçus, rapports)."""
    tiers = []
    lower: Optional[Decimal] = None
    for upper, status, fine in FINE_SCHEDULE:
        tiers.append(FineTier(
            lower=float(lower) if lower is not None else None,
            upper=float(upper) if upper is not None else None,
            status=status,
            fine_amount=fine,
        ))
        lower = upper
    return FineSchedule(legal_limit=float(LEGAL_LIMIT), max_level=float(MAX_LEVEL), tiers=tiers)
