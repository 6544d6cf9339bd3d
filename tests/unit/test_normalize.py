"""Unit tests for athletics_match.normalize."""

import pytest
from datetime import date

from athletics_match.normalize import (
    department_name,
    normalize_department_code,
    normalize_race_name,
    normalize_space,
    normalize_text,
    parse_date,
    parse_distance_meters,
    parse_numeric,
    significant_words,
    strip_edition_markers,
    trim,
)


# ---------------------------------------------------------------------------
# trim / normalize_space
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  Annecy  ") == "Annecy"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestNormalizeSpace:
    def test_collapses_internal_spaces(self):
        assert normalize_space("Trail   des\tLoups") == "Trail des Loups"

    def test_none(self):
        assert normalize_space(None) is None


# ---------------------------------------------------------------------------
# normalize_text
# ---------------------------------------------------------------------------

class TestNormalizeText:
    def test_lowercases_and_strips_accents(self):
        assert normalize_text("Foulées de l'Écluse") == "foulees de l'ecluse"

    def test_unifies_typographic_apostrophes(self):
        assert normalize_text("Vallée d’Ossau") == "vallee d'ossau"
        assert normalize_text("Vallée dʼOssau") == "vallee d'ossau"

    def test_punctuation_becomes_space(self):
        assert normalize_text("Vallée d’Ossau - 10km") == "vallee d'ossau 10km"

    def test_hyphenated_city(self):
        assert normalize_text("Saint-Malo") == "saint malo"

    def test_none_and_blank(self):
        assert normalize_text(None) == ""
        assert normalize_text("   ") == ""


# ---------------------------------------------------------------------------
# strip_edition_markers
# ---------------------------------------------------------------------------

class TestStripEditionMarkers:
    def test_hash_marker(self):
        assert strip_edition_markers("Trail des Loups #3") == "Trail des Loups"

    def test_no_dot_marker(self):
        assert strip_edition_markers("Marathon de Paris No. 8") == "Marathon de Paris"

    def test_degree_marker(self):
        assert strip_edition_markers("Cross du Lac N° 5") == "Cross du Lac"

    def test_leading_french_ordinal(self):
        assert strip_edition_markers("34ème Corrida des Bleuets") == "Corrida des Bleuets"

    def test_english_ordinal(self):
        assert strip_edition_markers("1st Annual Harbour Run") == "Annual Harbour Run"

    def test_leading_edition_phrase(self):
        assert strip_edition_markers("10ème édition du Trail des Crêtes") == "Trail des Crêtes"

    def test_trailing_edition_phrase_with_dash(self):
        assert strip_edition_markers("Corrida de Noël - 12e édition") == "Corrida de Noël"

    def test_trailing_english_edition(self):
        assert strip_edition_markers("Spring Run 3rd edition") == "Spring Run"

    def test_edition_phrase_followed_by_year(self):
        assert strip_edition_markers("Trail 3ème édition 2025") == "Trail"
        assert strip_edition_markers("Corrida de Noël - 12e édition (2024)") == "Corrida de Noël"

    def test_marker_followed_by_year(self):
        assert strip_edition_markers("Trail #3 (2025)") == "Trail"

    def test_trailing_year(self):
        assert strip_edition_markers("Foulées Vertes 2024") == "Foulées Vertes"
        assert strip_edition_markers("Foulées Vertes - 2024") == "Foulées Vertes"

    def test_trailing_parenthesized_remark(self):
        assert strip_edition_markers("Trail des Aravis (Thônes)") == "Trail des Aravis"

    def test_distance_in_name_preserved(self):
        assert strip_edition_markers("Les 100km de Millau") == "Les 100km de Millau"

    def test_bare_cardinal_preserved(self):
        assert strip_edition_markers("Les 24 heures de Paris") == "Les 24 heures de Paris"

    def test_never_blanks_a_name(self):
        assert strip_edition_markers("2024") == "2024"

    def test_none(self):
        assert strip_edition_markers(None) == ""

    @pytest.mark.parametrize("name", [
        "Trail des Loups #3",
        "34ème Corrida des Bleuets",
        "Trail #3 (2025)",
        "Les 100km de Millau",
        "10ème édition du Trail des Crêtes (Savoie) 2025",
        "2024",
        "No. 5 No. 6",
    ])
    def test_idempotent(self, name):
        once = strip_edition_markers(name)
        assert strip_edition_markers(once) == once


# ---------------------------------------------------------------------------
# normalize_race_name
# ---------------------------------------------------------------------------

class TestNormalizeRaceName:
    def test_removes_age_qualifier_and_maps_relais(self):
        assert normalize_race_name("Course relais adulte 4.3 km") == "course relai 4 3 km"

    def test_removes_federation_suffix(self):
        assert normalize_race_name("1/2 Marathon - Course HS non officielle") == "1 2 marathon"

    def test_singularizes_courses(self):
        assert normalize_race_name("Courses Enfants") == "course"

    def test_removes_en_duo(self):
        assert normalize_race_name("Trail en duo") == "trail"


# ---------------------------------------------------------------------------
# Department codes
# ---------------------------------------------------------------------------

class TestNormalizeDepartmentCode:
    def test_strips_padding_on_metropolitan(self):
        assert normalize_department_code("063") == "63"
        assert normalize_department_code("021") == "21"

    def test_corsica(self):
        assert normalize_department_code("02a") == "2A"
        assert normalize_department_code("2b") == "2B"

    def test_overseas_kept(self):
        assert normalize_department_code("974") == "974"

    def test_two_digit_unchanged(self):
        assert normalize_department_code("06") == "06"

    def test_blank(self):
        assert normalize_department_code("  ") is None
        assert normalize_department_code(None) is None


class TestDepartmentName:
    def test_known(self):
        assert department_name("74") == "Haute-Savoie"
        assert department_name("2A") == "Corse-du-Sud"
        assert department_name("974") == "La Réunion"

    def test_padded_code(self):
        assert department_name("063") == "Puy-de-Dôme"

    def test_unknown_returned_as_given(self):
        assert department_name("99") == "99"

    def test_none(self):
        assert department_name(None) == ""


# ---------------------------------------------------------------------------
# significant_words
# ---------------------------------------------------------------------------

class TestSignificantWords:
    def test_drops_short_words_and_duplicates(self):
        assert significant_words("trail de la des loups des") == ["trail", "des", "loups"]

    def test_empty(self):
        assert significant_words("") == []


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------

class TestParseDate:
    def test_iso(self):
        assert parse_date("2025-07-19") == date(2025, 7, 19)

    def test_french(self):
        assert parse_date("19/07/2025") == date(2025, 7, 19)

    def test_iso_datetime(self):
        assert parse_date("2025-07-19T08:30:00") == date(2025, 7, 19)

    def test_invalid(self):
        assert parse_date("juillet 2025") is None
        assert parse_date("") is None


class TestParseDistanceMeters:
    def test_bare_meters(self):
        assert parse_distance_meters("4300") == 4300.0

    def test_kilometers_with_comma(self):
        assert parse_distance_meters("4,3 km") == 4300.0

    def test_kilometers_compact(self):
        assert parse_distance_meters("21.1km") == 21100.0

    def test_meters_suffix(self):
        assert parse_distance_meters("5000 m") == 5000.0

    def test_invalid(self):
        assert parse_distance_meters("10 miles") is None
        assert parse_distance_meters(None) is None


class TestParseNumeric:
    def test_comma_decimal(self):
        assert parse_numeric("350,5") == 350.5

    def test_invalid(self):
        assert parse_numeric("abc") is None
