"""
Validation d'un enregistrement brut reçu d'un appareil terrain.

Les contrôles s'exécutent dans un ordre fixe et s'arrêtent au premier échec :
  1. Présence des champs obligatoires (et type chaîne)
  2. Genre dans {Male, Female, Other}
  3. Taux d'alcool numérique et fini
  4. Taux d'alcool dans [0.0, 1.0]
  5. Longueurs des chaînes, absence de caractères de contrôle (NUL compris)
  6. clientRecordId, capturedAt, source, photo

Une entrée malformée est un cas normal : elle est décrite dans le ValidationResult,
jamais levée comme exception.
"""

import unicodedata
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Tuple

from app.schemas.sync import DEFAULT_SOURCE, VALID_GENDERS, VALID_SOURCES, RecordSubmission, ValidationResult
from app.services.adjudication import MAX_LEVEL, MIN_LEVEL

# Ordre = ordre de contrôle et d'affichage dans le message d'erreur
REQUIRED_FIELDS = (
    "idNumber",
    "gender",
    "subjectIdentifier",
    "numberPlate",
    "alcoholLevel",
    "location",
    "deviceSerial",
)

# champ → (longueur min, longueur max)
LENGTH_BOUNDS = {
    "idNumber": (3, 20),
    "subjectIdentifier": (1, 255),
    "numberPlate": (1, 15),
    "deviceSerial": (1, 50),
    "location": (1, 100),
    "notes": (0, 500),
    "clientRecordId": (1, 100),
}

LEVEL_PRECISION = Decimal("0.000001")
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

MISSING_FIELD = "missing_field"
INVALID_TYPE = "invalid_type"
INVALID_GENDER = "invalid_gender"
NOT_NUMERIC = "not_numeric"
OUT_OF_RANGE = "out_of_range"
TOO_SHORT = "too_short"
TOO_LONG = "too_long"
INVALID_TIMESTAMP = "invalid_timestamp"
INVALID_SOURCE = "invalid_source"
INVALID_CHARACTERS = "invalid_characters"

# Champs libres où les retours à la ligne et tabulations sont admis
MULTILINE_FIELDS = {"notes", "photo"}
MULTILINE_WHITESPACE = {"\n", "\r", "\t"}


def _fail(field: Optional[str], reason: str, message: str) -> ValidationResult:
    return ValidationResult(field=field, reason=reason, message=message)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_level(value: Any) -> Optional[Decimal]:
    """Convertit le taux reçu en Decimal. None si non numérique, NaN ou infini."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        level = value
    elif isinstance(value, int):
        level = Decimal(value)
    elif isinstance(value, float):
        level = Decimal(str(value))
    elif isinstance(value, str):
        try:
            level = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not level.is_finite():
        return None
    return level


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepte une chaîne ISO-8601 (Z, offset ou naïve = UTC) ou un epoch en millisecondes.
    Retourne un datetime UTC, ou None si la valeur est illisible.
    """
    if isinstance(value, bool):
        return None
    try:
        if isinstance(value, (int, float)):
            return EPOCH + timedelta(milliseconds=value)
        if isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip())
        elif isinstance(value, datetime):
            parsed = value
        else:
            return None
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_level(level: Decimal) -> Decimal:
    """Arrondit le taux à la précision stockée (6 décimales)."""
    return level.quantize(LEVEL_PRECISION, rounding=ROUND_HALF_UP)


def _check_characters(field: str, value: str) -> Optional[ValidationResult]:
    """Refuse NUL et autres caractères de contrôle (rejetés par PostgreSQL ou illisibles sur un reçu)."""
    allowed = MULTILINE_WHITESPACE if field in MULTILINE_FIELDS else set()
    for char in value:
        if char not in allowed and unicodedata.category(char) == "Cc":
            return _fail(field, INVALID_CHARACTERS, f"{field} contains control characters")
    return None


def _check_length(field: str, value: str) -> Optional[ValidationResult]:
    low, high = LENGTH_BOUNDS[field]
    if len(value) < low:
        return _fail(field, TOO_SHORT, f"{field} must be between {low} and {high} characters")
    if len(value) > high:
        if low > 1:
            return _fail(field, TOO_LONG, f"{field} must be between {low} and {high} characters")
        return _fail(field, TOO_LONG, f"{field} must be at most {high} characters")
    return None


def validate(raw: Any, default_source: str = DEFAULT_SOURCE) -> ValidationResult:
    """
    Valide et normalise un enregistrement brut. Ne lève jamais d'exception pour une entrée malformée.
    default_source tague les enregistrements qui n'indiquent pas leur canal.
    """
    if not isinstance(raw, dict):
        return _fail(None, INVALID_TYPE, "Record must be a JSON object")

    # 1. Présence
    missing = [name for name in REQUIRED_FIELDS if _is_blank(raw.get(name))]
    if missing:
        return _fail(missing[0], MISSING_FIELD, f"Missing required fields: {', '.join(missing)}")

    values: Dict[str, str] = {}
    for name in REQUIRED_FIELDS:
        if name == "alcoholLevel":
            continue
        if not isinstance(raw[name], str):
            return _fail(name, INVALID_TYPE, f"{name} must be a string")
        values[name] = raw[name].strip()

    # 2. Genre
    if values["gender"] not in VALID_GENDERS:
        return _fail(
            "gender", INVALID_GENDER,
            f"Invalid gender: must be one of {', '.join(sorted(VALID_GENDERS))}",
        )

    # 3. Taux numérique
    level = parse_level(raw["alcoholLevel"])
    if level is None:
        return _fail("alcoholLevel", NOT_NUMERIC, "Alcohol level is not a valid number")

    # 4. Plage autorisée (contrôlée avant arrondi : 1.0000001 est rejeté)
    if level < MIN_LEVEL or level > MAX_LEVEL:
        return _fail(
            "alcoholLevel", OUT_OF_RANGE,
            f"Alcohol level must be between {MIN_LEVEL:.1f} and {MAX_LEVEL:.1f}",
        )

    # 5. Longueurs et caractères
    notes = raw.get("notes")
    if notes is not None:
        if not isinstance(notes, str):
            return _fail("notes", INVALID_TYPE, "notes must be a string")
        notes = notes.strip() or None
    checked: Tuple[Tuple[str, Optional[str]], ...] = (
        ("idNumber", values["idNumber"]),
        ("subjectIdentifier", values["subjectIdentifier"]),
        ("numberPlate", values["numberPlate"]),
        ("deviceSerial", values["deviceSerial"]),
        ("location", values["location"]),
        ("notes", notes),
    )
    for name, value in checked:
        if value is None:
            continue
        failure = _check_length(name, value) or _check_characters(name, value)
        if failure:
            return failure

    # 6. Champs optionnels de synchronisation
    client_record_id = raw.get("clientRecordId")
    if _is_blank(client_record_id):
        client_record_id = None
    elif not isinstance(client_record_id, str):
        return _fail("clientRecordId", INVALID_TYPE, "clientRecordId must be a string")
    else:
        client_record_id = client_record_id.strip()
        failure = _check_length("clientRecordId", client_record_id) or _check_characters(
            "clientRecordId", client_record_id,
        )
        if failure:
            return failure

    captured_at = None
    if not _is_blank(raw.get("capturedAt")):
        captured_at = parse_timestamp(raw["capturedAt"])
        if captured_at is None:
            return _fail("capturedAt", INVALID_TIMESTAMP, "capturedAt is not a valid timestamp")

    source = raw.get("source")
    if _is_blank(source):
        source = default_source
    elif not isinstance(source, str) or source.strip() not in VALID_SOURCES:
        return _fail(
            "source", INVALID_SOURCE,
            f"Invalid source: must be one of {', '.join(sorted(VALID_SOURCES))}",
        )
    else:
        source = source.strip()

    # Photo : base64 ou URL, stockée telle quelle
    photo = raw.get("photo")
    if _is_blank(photo):
        photo = None
    elif not isinstance(photo, str):
        return _fail("photo", INVALID_TYPE, "photo must be a string")
    else:
        photo = photo.strip()
        failure = _check_characters("photo", photo)
        if failure:
            return failure

    return ValidationResult(
        submission=RecordSubmission(
            id_number=values["idNumber"],
            gender=values["gender"],
            subject_identifier=values["subjectIdentifier"],
            number_plate=values["numberPlate"],
            alcohol_level=normalize_level(level),
            location=values["location"],
            device_serial=values["deviceSerial"],
            notes=notes,
            photo=photo,
            captured_at=captured_at,
            client_record_id=client_record_id,
            source=source,
        )
    )
