"""
Router public du barème : les services de reçus et de rapports doivent
reproduire exactement le même statut et la même amende pour un taux donné.
"""

from decimal import Decimal

from fastapi import APIRouter, HTTPException, Query

from app.schemas.test_record import AdjudicationResponse, FineSchedule
from app.services.adjudication import MAX_LEVEL, MIN_LEVEL, adjudicate, fine_schedule
from app.services.validation import normalize_level

router = APIRouter(prefix="/api/v1/adjudication", tags=["Barème"])


@router.get("/schedule", response_model=FineSchedule, summary="Barème des amendes")
def get_schedule():
    """Paliers du barème : statut et amende par tranche de taux (mg/L)."""
    return fine_schedule()


@router.get("", response_model=AdjudicationResponse, summary="Statut et amende pour un taux")
def get_adjudication(alcohol_level: Decimal = Query(..., alias="alcoholLevel")):
    """Retourne 422 si le taux n'est pas un nombre fini dans [0.0, 1.0]."""
    if not alcohol_level.is_finite() or alcohol_level < MIN_LEVEL or alcohol_level > MAX_LEVEL:
        raise HTTPException(status_code=422, detail="Alcohol level must be between 0.0 and 1.0")
    level = normalize_level(alcohol_level)
    status, fine_amount = adjudicate(level)
    return AdjudicationResponse(alcohol_level=level, status=status, fine_amount=fine_amount)
