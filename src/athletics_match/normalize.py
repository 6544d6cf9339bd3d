"""Normalization functions for scraped competition matching.

All text helpers accept str | None.  Comparison helpers (normalize_text,
strip_edition_markers, normalize_race_name) always return a str so callers
can feed them straight into the fuzzy scorer.
"""

from __future__ import annotations

import re
import unicodedata
from datetime import date, datetime
from decimal import Decimal, InvalidOperation


# ---------------------------------------------------------------------------
# Rule 1: trim
# ---------------------------------------------------------------------------

def trim(value: str | None) -> str | None:
    """Strip leading/trailing whitespace; treat empty string as None."""
    if value is None:
        return None
    v = value.strip()
    return v if v else None


# ---------------------------------------------------------------------------
# Rule 2: normalize_space
# ---------------------------------------------------------------------------

def normalize_space(value: str | None) -> str | None:
    """Collapse internal runs of whitespace to single spaces, then trim."""
    v = trim(value)
    if v is None:
        return None
    return re.sub(r"\s+", " ", v)


# ---------------------------------------------------------------------------
# Rule 3: normalize_text  (canonical comparison string)
# ---------------------------------------------------------------------------

_APOSTROPHES_RE = re.compile(r"[‘’‛ʼ`´]")
_PUNCT_RE = re.compile(r"[^\w\s']")


def normalize_text(value: str | None) -> str:
    """Lowercase, drop diacritics, unify apostrophes, replace punctuation.

    Every punctuation character except the ASCII apostrophe becomes a space,
    then whitespace is collapsed.  "Vallée d’Ossau - 10km" → "vallee d'ossau 10km".
    """
    v = trim(value)
    if v is None:
        return ""
    v = v.lower()
    # Decompose unicode (e.g. accented chars) then drop combining marks
    v = unicodedata.normalize("NFD", v)
    v = "".join(c for c in v if not unicodedata.combining(c))
    v = _APOSTROPHES_RE.sub("'", v)
    v = _PUNCT_RE.sub(" ", v)
    return re.sub(r"\s+", " ", v).strip()


# ---------------------------------------------------------------------------
# Rule 4: strip_edition_markers
# ---------------------------------------------------------------------------

# Ordinal suffixes: 1er, 1ère, 1re, 2e, 2è, 34ème, 3eme, 1st, 2nd, 3rd, 34th.
# A bare cardinal ("100km", "10 km") never matches: a suffix is mandatory
# unless the number is directly followed by the word "edition".
_SUFFIX = r"(?:\s?[eèé]mes?|\s?[eèé]res?|st|nd|rd|th|ers?|res?|e|è)"
_ORDINAL = rf"\d+{_SUFFIX}"
_EDITION_NUMBER = rf"\d+{_SUFFIX}?"

_LEADING_EDITION_RE = re.compile(
    rf"^\s*{_EDITION_NUMBER}\s+[eé]ditions?\s+"
    r"(?:de\s+la\s+|de\s+l'|du\s+|des\s+|de\s+|d'|of\s+the\s+|of\s+)?",
    re.IGNORECASE,
)
_TRAILING_EDITION_RE = re.compile(
    rf"\s*[-–—]?\s*\b{_EDITION_NUMBER}\s+[eé]ditions?"
    r"(?:\s*[-–—]?\s*\(?(?:19|20)\d{2}\)?)?\s*$",
    re.IGNORECASE,
)
_ORDINAL_RE = re.compile(rf"\b{_ORDINAL}\b", re.IGNORECASE)
_NUMBERING_RE = re.compile(
    r"(?:#|№)\s*\d+\b|\b(?:no|n°|nº)\s?\.?\s*\d+\b",
    re.IGNORECASE,
)
_TRAILING_YEAR_RE = re.compile(r"\s*[-–—]?\s*\(?\b(?:19|20)\d{2}\)?\s*$")
_TRAILING_PAREN_RE = re.compile(r"\s*\([^()]*\)\s*$")
_EDGE_DASHES_RE = re.compile(r"^[\s\-–—]+|[\s\-–—]+$")


def _collapse(value: str) -> str:
    value = re.sub(r"\s+", " ", value)
    return _EDGE_DASHES_RE.sub("", value)


def _strip_once(name: str) -> str:
    # Edition phrases and numbering markers go first so that "#3 (2025)"
    # is seen as a marker followed by a year, not as one number.
    v = _collapse(_LEADING_EDITION_RE.sub("", name))
    v = _collapse(_TRAILING_EDITION_RE.sub("", v))
    v = _collapse(_ORDINAL_RE.sub("", v))
    v = _collapse(_NUMBERING_RE.sub("", v))
    v = _collapse(_TRAILING_YEAR_RE.sub("", v))
    v = _collapse(_TRAILING_PAREN_RE.sub("", v))
    return v


def strip_edition_markers(name: str | None) -> str:
    """Remove edition ordinals, numbering markers, trailing years and remarks.

    Applied until a fixed point is reached, so the result is idempotent.
    A name that would be emptied entirely is returned as-is (whitespace
    collapsed) rather than blanked.

    >>> strip_edition_markers("34ème Corrida des Bleuets")
    'Corrida des Bleuets'
    >>> strip_edition_markers("Trail #3 (2025)")
    'Trail'
    >>> strip_edition_markers("Les 100km de Millau")
    'Les 100km de Millau'
    """
    current = normalize_space(name)
    if current is None:
        return ""
    while True:
        stripped = _strip_once(current)
        if not stripped or stripped == current:
            return current
        current = stripped


# ---------------------------------------------------------------------------
# Rule 5: normalize_race_name
# ---------------------------------------------------------------------------

_RACE_NAME_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"course hs non officielle"), " "),
    (re.compile(r"course hs\b"), " "),
    (re.compile(r"\ben duo\b"), " "),
    (re.compile(r"\badultes?\b"), " "),
    (re.compile(r"\benfants?\b"), " "),
    (re.compile(r"\bjeunes?\b"), " "),
    (re.compile(r"\bcourses\b"), "course"),
    (re.compile(r"\brelais\b"), "relai"),
]


def normalize_race_name(value: str | None) -> str:
    """normalize_text plus removal of federation suffixes and age qualifiers."""
    v = normalize_text(value)
    for pattern, repl in _RACE_NAME_RULES:
        v = pattern.sub(repl, v)
    return re.sub(r"\s+", " ", v).strip()


# ---------------------------------------------------------------------------
# Rule 6: department codes
# ---------------------------------------------------------------------------

FRENCH_DEPARTMENTS: dict[str, str] = {
    "01": "Ain", "02": "Aisne", "03": "Allier", "04": "Alpes-de-Haute-Provence",
    "05": "Hautes-Alpes", "06": "Alpes-Maritimes", "07": "Ardèche", "08": "Ardennes",
    "09": "Ariège", "10": "Aube", "11": "Aude", "12": "Aveyron",
    "13": "Bouches-du-Rhône", "14": "Calvados", "15": "Cantal", "16": "Charente",
    "17": "Charente-Maritime", "18": "Cher", "19": "Corrèze", "21": "Côte-d'Or",
    "22": "Côtes-d'Armor", "23": "Creuse", "24": "Dordogne", "25": "Doubs",
    "26": "Drôme", "27": "Eure", "28": "Eure-et-Loir", "29": "Finistère",
    "2A": "Corse-du-Sud", "2B": "Haute-Corse", "30": "Gard", "31": "Haute-Garonne",
    "32": "Gers", "33": "Gironde", "34": "Hérault", "35": "Ille-et-Vilaine",
    "36": "Indre", "37": "Indre-et-Loire", "38": "Isère", "39": "Jura",
    "40": "Landes", "41": "Loir-et-Cher", "42": "Loire", "43": "Haute-Loire",
    "44": "Loire-Atlantique", "45": "Loiret", "46": "Lot", "47": "Lot-et-Garonne",
    "48": "Lozère", "49": "Maine-et-Loire", "50": "Manche", "51": "Marne",
    "52": "Haute-Marne", "53": "Mayenne", "54": "Meurthe-et-Moselle", "55": "Meuse",
    "56": "Morbihan", "57": "Moselle", "58": "Nièvre", "59": "Nord",
    "60": "Oise", "61": "Orne", "62": "Pas-de-Calais", "63": "Puy-de-Dôme",
    "64": "Pyrénées-Atlantiques", "65": "Hautes-Pyrénées", "66": "Pyrénées-Orientales",
    "67": "Bas-Rhin", "68": "Haut-Rhin", "69": "Rhône", "70": "Haute-Saône",
    "71": "Saône-et-Loire", "72": "Sarthe", "73": "Savoie", "74": "Haute-Savoie",
    "75": "Paris", "76": "Seine-Maritime", "77": "Seine-et-Marne", "78": "Yvelines",
    "79": "Deux-Sèvres", "80": "Somme", "81": "Tarn", "82": "Tarn-et-Garonne",
    "83": "Var", "84": "Vaucluse", "85": "Vendée", "86": "Vienne",
    "87": "Haute-Vienne", "88": "Vosges", "89": "Yonne", "90": "Territoire de Belfort",
    "91": "Essonne", "92": "Hauts-de-Seine", "93": "Seine-Saint-Denis",
    "94": "Val-de-Marne", "95": "Val-d'Oise",
    "971": "Guadeloupe", "972": "Martinique", "973": "Guyane",
    "974": "La Réunion", "976": "Mayotte",
}

_OVERSEAS_RE = re.compile(r"^9[78]\d$")
_PADDED_METRO_RE = re.compile(r"^0(\d{2}|2[AB])$")


def normalize_department_code(value: str | None) -> str | None:
    """Return the canonical department code, or None when blank.

    "063" → "63", "021" → "21", "02a" → "2A", "974" → "974", "06" → "06".
    """
    v = trim(value)
    if v is None:
        return None
    v = v.upper()
    if _OVERSEAS_RE.match(v):
        return v
    m = _PADDED_METRO_RE.match(v)
    if m:
        return m.group(1)
    return v


def department_name(code: str | None) -> str:
    """Return the department name for a code, or the code itself if unknown."""
    norm = normalize_department_code(code)
    if norm is None:
        return ""
    return FRENCH_DEPARTMENTS.get(norm, code or "")


# ---------------------------------------------------------------------------
# Helper: significant_words
# ---------------------------------------------------------------------------

def significant_words(normalized: str, min_length: int = 3) -> list[str]:
    """Return the distinct words of a normalized string with len >= min_length."""
    seen: list[str] = []
    for word in normalized.split():
        if len(word) >= min_length and word not in seen:
            seen.append(word)
    return seen


# ---------------------------------------------------------------------------
# Parsers for the scraped feed
# ---------------------------------------------------------------------------

_DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S")


def parse_date(value: str | None) -> date | None:
    """Parse ISO '2025-07-19' or federation-style '19/07/2025'; None on failure."""
    v = trim(value)
    if v is None:
        return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(v, fmt).date()
        except ValueError:
            continue
    return None


_DISTANCE_RE = re.compile(r"^(\d+(?:[.,]\d+)?)\s*(km|m)?$", re.IGNORECASE)


def parse_distance_meters(value: str | None) -> float | None:
    """Parse '4300', '4.3 km', '4,3km' or '5000 m' into meters.

    A bare number is taken as meters.  Returns None on failure.
    """
    v = trim(value)
    if v is None:
        return None
    m = _DISTANCE_RE.match(v)
    if not m:
        return None
    try:
        amount = Decimal(m.group(1).replace(",", "."))
    except InvalidOperation:
        return None
    if (m.group(2) or "").lower() == "km":
        amount *= 1000
    return float(amount)


def parse_numeric(value: str | None) -> float | None:
    """Parse a decimal number from a string, returning None on failure."""
    v = trim(value)
    if v is None:
        return None
    try:
        return float(Decimal(v.replace(",", ".")))
    except InvalidOperation:
        return None
