"""athletics_match.keywords

Stopwords, sponsor names and keyword extraction for event-name matching.

Generic words ("trail", "corrida", "de", "la", ...) carry no distinctive
information and drag similarity scores down, so they are filtered out before
the keyword-level fuzzy search.  All functions expect normalize_text() output
(lowercase, no accents).
"""

from __future__ import annotations

import re

# ---------------------------------------------------------------------------
# Word lists
# ---------------------------------------------------------------------------

# Brands frequently prefixed to an official event name but absent from the
# reference store ("Brooks Marathon Annecy").
EVENT_SPONSORS = frozenset({
    # running equipment
    "brooks", "asics", "nike", "adidas", "salomon", "hoka", "saucony", "new balance",
    "mizuno", "puma", "reebok", "under armour", "decathlon", "kalenji",
    # energy / nutrition
    "edf", "engie", "total", "totalenergies", "isostar", "overstim", "aptonia",
    "maurten", "gu", "clif", "powerbar",
    # tech / telecom
    "orange", "sfr", "bouygues", "free", "samsung", "apple", "garmin", "suunto",
    "polar", "coros", "strava",
    # banking / insurance
    "bnp", "bnp paribas", "credit agricole", "societe generale", "lcl", "caisse epargne",
    "axa", "allianz", "generali", "maif", "macif", "groupama",
    # automotive
    "renault", "peugeot", "citroen", "toyota", "volkswagen", "bmw", "mercedes",
    # misc
    "schneider", "schneider electric", "harmonie mutuelle", "apicil", "vittel",
    "evian", "perrier", "contrex", "powerade", "gatorade", "red bull",
    # media
    "france bleu", "france 3", "lequipe", "l'equipe", "rmc", "bfm",
})

EVENT_NAME_STOPWORDS = frozenset({
    # articles
    "le", "la", "les", "un", "une", "des",
    # prepositions
    "de", "du", "en", "au", "aux", "a",
    # edition words
    "edition", "eme", "ere", "decouverte", "nouveau", "nouvelle",
    # organizer words
    "by", "organise", "presente", "propose",
    # event types (too generic)
    "trail", "course", "semi", "marathon", "km", "run", "running",
    "corrida", "foulees", "relais", "marche", "randonnee",
    # generic qualifiers
    "grand", "grande", "petit", "petite", "super", "mega",
    "international", "nationale", "regional", "departemental",
    # time of day
    "nocturne", "diurne", "matinal", "vesperale",
})

CITY_NAME_STOPWORDS = frozenset({"saint", "sainte", "sur", "sous", "les", "en"})

# Longest first so "schneider electric" is removed before "schneider".
_SPONSOR_PATTERNS = [
    re.compile(rf"(^|\s){re.escape(s)}(?=\s|$)")
    for s in sorted(EVENT_SPONSORS, key=len, reverse=True)
]

DISTINCTIVE_KEYWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

def remove_stopwords(
    text: str,
    stopwords: frozenset[str] = EVENT_NAME_STOPWORDS,
    min_word_length: int = 3,
) -> str:
    """Drop stopwords and words shorter than min_word_length."""
    return " ".join(
        w for w in text.split()
        if len(w) >= min_word_length and w not in stopwords
    )


def remove_sponsors(event_name: str) -> str:
    """Remove known sponsor names.  "brooks marathon annecy" → "marathon annecy"."""
    result = event_name
    for pattern in _SPONSOR_PATTERNS:
        result = pattern.sub(r"\1", result)
    return re.sub(r"\s+", " ", result).strip()


def extract_keywords(event_name: str) -> list[str]:
    """Return distinctive words (len >= 4, not stopwords), longest first.

    >>> extract_keywords("trail decouverte le gargantuesque")
    ['gargantuesque']
    """
    cleaned = remove_stopwords(event_name, EVENT_NAME_STOPWORDS, 4)
    return sorted(cleaned.split(), key=len, reverse=True)


def primary_keyword(event_name: str) -> str | None:
    keywords = extract_keywords(event_name)
    return keywords[0] if keywords else None


def name_quality(event_name: str) -> float:
    """Share of distinctive words in a name, with a bonus for a long primary keyword."""
    words = event_name.split()
    if not words:
        return 0.0
    keywords = extract_keywords(event_name)
    ratio = len(keywords) / len(words)
    bonus = 0.2 if keywords and len(keywords[0]) > DISTINCTIVE_KEYWORD_LENGTH else 0.0
    return min(ratio + bonus, 1.0)


def common_keywords(left: list[str], right: list[str]) -> list[str]:
    """Keywords of `left` equal to, or contained in / containing, one of `right`."""
    return [
        k for k in left
        if any(k == other or k in other or other in k for other in right)
    ]
