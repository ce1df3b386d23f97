"""
Tests unitaires du validateur d'enregistrements bruts.
Couverture : ordre des contrôles, champs manquants, genre, taux non numérique / hors plage,
longueurs, caractères de contrôle, normalisation (trim, précision), capturedAt, source,
clientRecordId, photo.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from app.services.validation import (
    INVALID_CHARACTERS,
    INVALID_GENDER,
    INVALID_SOURCE,
    INVALID_TIMESTAMP,
    INVALID_TYPE,
    MISSING_FIELD,
    NOT_NUMERIC,
    OUT_OF_RANGE,
    TOO_LONG,
    TOO_SHORT,
    parse_timestamp,
    validate,
)


# --- Helper ---

def make_raw(**overrides) -> dict:
    raw = {
        "idNumber": "ID12345",
        "gender": "Male",
        "subjectIdentifier": "Jean Dupont",
        "numberPlate": "1-ABC-123",
        "alcoholLevel": 0.05,
        "location": "Rue de la Loi, Bruxelles",
        "deviceSerial": "BRT-0001",
    }
    raw.update(overrides)
    return raw


# ============================================================
# Enregistrement valide
# ============================================================

def test_enregistrement_valide():
    """Un enregistrement complet est accepté et normalisé."""
    result = validate(make_raw())

    assert result.ok
    assert result.field is None
    sub = result.submission
    assert sub.id_number == "ID12345"
    assert sub.alcohol_level == Decimal("0.050000")
    assert sub.source == "mobile_app_offline_sync"
    assert sub.captured_at is None
    assert sub.client_record_id is None
    assert sub.notes is None


def test_chaines_nettoyees():
    """Les espaces autour des chaînes sont supprimés."""
    result = validate(make_raw(idNumber="  ID999  ", numberPlate=" 1-XYZ-999 ", notes="  RAS  "))

    assert result.ok
    assert result.submission.id_number == "ID999"
    assert result.submission.number_plate == "1-XYZ-999"
    assert result.submission.notes == "RAS"


def test_champs_serveur_ignores():
    """fineAmount / status envoyés par le client ne font pas échouer la validation."""
    result = validate(make_raw(fineAmount=1, status="normal"))
    assert result.ok


# ============================================================
# 1. Champs obligatoires
# ============================================================

@pytest.mark.parametrize(
    "field",
    ["idNumber", "gender", "subjectIdentifier", "numberPlate", "alcoholLevel", "location", "deviceSerial"],
)
def test_champ_obligatoire_manquant(field):
    raw = make_raw()
    del raw[field]

    result = validate(raw)

    assert not result.ok
    assert result.field == field
    assert result.reason == MISSING_FIELD
    assert result.message == f"Missing required fields: {field}"


@pytest.mark.parametrize("value", [None, "", "   "])
def test_champ_vide_equivaut_a_manquant(value):
    result = validate(make_raw(numberPlate=value))
    assert result.reason == MISSING_FIELD
    assert result.field == "numberPlate"


def test_plusieurs_champs_manquants_listes():
    """Tous les champs manquants sont cités, le premier est retenu comme champ fautif."""
    raw = make_raw()
    del raw["numberPlate"]
    del raw["idNumber"]

    result = validate(raw)

    assert result.field == "idNumber"
    assert result.message == "Missing required fields: idNumber, numberPlate"


def test_taux_zero_n_est_pas_manquant():
    """0 est une valeur présente, pas un champ manquant."""
    result = validate(make_raw(alcoholLevel=0))
    assert result.ok
    assert result.submission.alcohol_level == Decimal("0")


def test_type_non_chaine_rejete():
    result = validate(make_raw(idNumber=12345))
    assert result.reason == INVALID_TYPE
    assert result.field == "idNumber"


def test_enregistrement_non_objet():
    result = validate(["pas", "un", "objet"])
    assert not result.ok
    assert result.reason == INVALID_TYPE
    assert result.field is None


# ============================================================
# 2. Genre
# ============================================================

def test_genre_invalide():
    result = validate(make_raw(gender="Unknown"))
    assert result.reason == INVALID_GENDER
    assert result.field == "gender"


@pytest.mark.parametrize("gender", ["Male", "Female", "Other"])
def test_genres_valides(gender):
    assert validate(make_raw(gender=gender)).ok


# ============================================================
# 3 / 4. Taux d'alcool
# ============================================================

@pytest.mark.parametrize("value", ["abc", "NaN", "Infinity", float("nan"), float("inf"), True, [0.1]])
def test_taux_non_numerique(value):
    result = validate(make_raw(alcoholLevel=value))
    assert result.reason == NOT_NUMERIC
    assert result.field == "alcoholLevel"


@pytest.mark.parametrize("value", [1.0001, -0.01, "1.5", 2])
def test_taux_hors_plage(value):
    result = validate(make_raw(alcoholLevel=value))
    assert result.reason == OUT_OF_RANGE
    assert result.field == "alcoholLevel"


def test_non_numerique_distinct_de_hors_plage():
    assert validate(make_raw(alcoholLevel="x")).reason != validate(make_raw(alcoholLevel=5)).reason


@pytest.mark.parametrize("value", [0, 0.0, 1, 1.0, "1.0", "0"])
def test_bornes_de_plage_incluses(value):
    assert validate(make_raw(alcoholLevel=value)).ok


def test_taux_chaine_accepte():
    result = validate(make_raw(alcoholLevel=" 0.2 "))
    assert result.submission.alcohol_level == Decimal("0.200000")


def test_taux_precision_fixe():
    """Le taux est arrondi à 6 décimales : 0.080001 reste distinct de 0.08."""
    assert validate(make_raw(alcoholLevel=0.080001)).submission.alcohol_level == Decimal("0.080001")
    assert validate(make_raw(alcoholLevel="0.0800004")).submission.alcohol_level == Decimal("0.080000")


def test_juste_au_dessus_de_1_rejete_avant_arrondi():
    """1.0000001 s'arrondirait à 1.000000 mais est rejeté car hors plage."""
    assert validate(make_raw(alcoholLevel="1.0000001")).reason == OUT_OF_RANGE


# ============================================================
# 5. Longueurs
# ============================================================

def test_id_number_trop_court():
    result = validate(make_raw(idNumber="AB"))
    assert result.reason == TOO_SHORT
    assert result.field == "idNumber"


def test_id_number_trop_long():
    result = validate(make_raw(idNumber="X" * 21))
    assert result.reason == TOO_LONG
    assert result.field == "idNumber"


@pytest.mark.parametrize(
    "field, size",
    [("numberPlate", 16), ("deviceSerial", 51), ("location", 101), ("notes", 501)],
)
def test_longueurs_maximales(field, size):
    result = validate(make_raw(**{field: "x" * size}))
    assert result.reason == TOO_LONG
    assert result.field == field


@pytest.mark.parametrize(
    "field, size",
    [("idNumber", 20), ("numberPlate", 15), ("deviceSerial", 50), ("location", 100), ("notes", 500)],
)
def test_longueurs_limites_acceptees(field, size):
    assert validate(make_raw(**{field: "x" * size})).ok


# ============================================================
# Ordre des contrôles
# ============================================================

def test_manquant_avant_genre():
    raw = make_raw(gender="Unknown")
    del raw["location"]
    assert validate(raw).reason == MISSING_FIELD


def test_genre_avant_taux():
    assert validate(make_raw(gender="Unknown", alcoholLevel="abc")).reason == INVALID_GENDER


def test_taux_avant_longueurs():
    assert validate(make_raw(alcoholLevel=3, idNumber="AB")).reason == OUT_OF_RANGE


# ============================================================
# 6. clientRecordId, capturedAt, source
# ============================================================

def test_client_record_id_conserve():
    result = validate(make_raw(clientRecordId=" 5f1c-uuid "))
    assert result.submission.client_record_id == "5f1c-uuid"


def test_client_record_id_trop_long():
    result = validate(make_raw(clientRecordId="x" * 101))
    assert result.reason == TOO_LONG
    assert result.field == "clientRecordId"


def test_client_record_id_non_chaine():
    assert validate(make_raw(clientRecordId=42)).reason == INVALID_TYPE


def test_captured_at_iso_utc():
    result = validate(make_raw(capturedAt="2026-02-20T14:32:15Z"))
    assert result.submission.captured_at == datetime(2026, 2, 20, 14, 32, 15, tzinfo=timezone.utc)


def test_captured_at_avec_offset_converti_en_utc():
    result = validate(make_raw(capturedAt="2026-02-20T15:32:15+01:00"))
    assert result.submission.captured_at == datetime(2026, 2, 20, 14, 32, 15, tzinfo=timezone.utc)


def test_captured_at_epoch_millisecondes():
    result = validate(make_raw(capturedAt=1771597935123))
    expected = datetime(2026, 2, 20, 14, 32, 15, 123000, tzinfo=timezone.utc)
    assert result.submission.captured_at == expected


def test_captured_at_illisible():
    result = validate(make_raw(capturedAt="hier soir"))
    assert result.reason == INVALID_TIMESTAMP
    assert result.field == "capturedAt"


def test_parse_timestamp_naif_considere_utc():
    assert parse_timestamp("2026-02-20T14:32:15") == datetime(2026, 2, 20, 14, 32, 15, tzinfo=timezone.utc)
    assert parse_timestamp(True) is None


@pytest.mark.parametrize("source", ["mobile_app", "esp32", "mobile_app_offline_sync"])
def test_sources_valides(source):
    assert validate(make_raw(source=source)).submission.source == source


def test_source_invalide():
    result = validate(make_raw(source="bluetooth"))
    assert result.reason == INVALID_SOURCE
    assert result.field == "source"


# ============================================================
# Caractères de contrôle
# ============================================================

@pytest.mark.parametrize("field", ["subjectIdentifier", "location", "notes", "clientRecordId"])
def test_caractere_nul_rejete(field):
    result = validate(make_raw(**{field: "abc\x00def"}))
    assert not result.ok
    assert result.field == field
    assert result.reason == INVALID_CHARACTERS


def test_caractere_de_controle_rejete():
    result = validate(make_raw(numberPlate="1-ABC\x07123"))
    assert result.reason == INVALID_CHARACTERS
    assert result.field == "numberPlate"


def test_retour_ligne_rejete_hors_notes():
    assert validate(make_raw(location="Rue de la Loi\nBruxelles")).reason == INVALID_CHARACTERS


def test_retour_ligne_admis_dans_notes():
    result = validate(make_raw(notes="Ligne 1\nLigne 2\tfin"))
    assert result.ok
    assert result.submission.notes == "Ligne 1\nLigne 2\tfin"


def test_longueur_avant_caracteres():
    result = validate(make_raw(idNumber="\x00"))
    assert result.reason == TOO_SHORT


# ============================================================
# Photo
# ============================================================

def test_photo_conservee():
    result = validate(make_raw(photo="  data:image/jpeg;base64,/9j/4AAQ  "))
    assert result.submission.photo == "data:image/jpeg;base64,/9j/4AAQ"


def test_photo_vide_ignoree():
    assert validate(make_raw(photo="  ")).submission.photo is None


def test_photo_non_chaine_rejetee():
    result = validate(make_raw(photo=123))
    assert result.field == "photo"
    assert result.reason == INVALID_TYPE


def test_photo_caractere_nul_rejete():
    result = validate(make_raw(photo="aGVs\x00bG8="))
    assert result.field == "photo"
    assert result.reason == INVALID_CHARACTERS
