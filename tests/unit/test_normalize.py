"""Unit tests for groundwater_etl.normalize."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from groundwater_etl.normalize import (
    CellValue,
    HeaderParts,
    compile_date_format,
    normalize_cell,
    normalize_code,
    normalize_date,
    normalize_number,
    normalize_space,
    normalize_text,
    parse_date_strict,
    parse_header,
    trim,
)


# ---------------------------------------------------------------------------
# trim / normalize_space
# ---------------------------------------------------------------------------

class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  Pozo 4  ") == "Pozo 4"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_whitespace_only_returns_none(self):
        assert trim(" \t ") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestNormalizeSpace:
    def test_collapses_internal_runs(self):
        assert normalize_space("San   Juan\t de  Dios") == "San Juan de Dios"

    def test_none(self):
        assert normalize_space(None) is None


# ---------------------------------------------------------------------------
# normalize_text / normalize_code
# ---------------------------------------------------------------------------

class TestNormalizeText:
    def test_trims_strings(self):
        assert normalize_text("  Cerrillos ") == "Cerrillos"

    def test_blank_is_none(self):
        assert normalize_text("   ") is None

    def test_numbers_become_text(self):
        assert normalize_text(15) == "15"

    def test_datetime_becomes_iso_date(self):
        assert normalize_text(datetime(2018, 4, 2, 9, 30)) == "2018-04-02"


class TestNormalizeCode:
    def test_integral_float_drops_fraction(self):
        assert normalize_code(12.0) == "12"

    def test_fractional_float_kept(self):
        assert normalize_code(12.5) == "12.5"

    def test_text_trimmed(self):
        assert normalize_code(" P-01 ") == "P-01"

    def test_none(self):
        assert normalize_code(None) is None


# ---------------------------------------------------------------------------
# normalize_number
# ---------------------------------------------------------------------------

class TestNormalizeNumber:
    def test_native_int(self):
        assert normalize_number(7) == 7.0

    def test_native_decimal(self):
        assert normalize_number(Decimal("7.25")) == 7.25

    def test_numeric_text(self):
        assert normalize_number(" 7.2 ") == 7.2

    def test_comma_decimal_separator(self):
        assert normalize_number("7,2") == 7.2

    def test_scientific_notation(self):
        assert normalize_number("1.5e3") == 1500.0

    def test_negative(self):
        assert normalize_number("-0.5") == -0.5

    def test_non_numeric_text(self):
        assert normalize_number("trace") is None

    def test_less_than_marker_is_not_numeric(self):
        assert normalize_number("<0.01") is None

    def test_whitespace_only_is_none(self):
        assert normalize_number("   ") is None

    def test_bool_is_not_numeric(self):
        assert normalize_number(True) is None

    def test_none(self):
        assert normalize_number(None) is None

    def test_non_finite_rejected(self):
        assert normalize_number(float("nan")) is None
        assert normalize_number("1e999") is None


# ---------------------------------------------------------------------------
# normalize_date
# ---------------------------------------------------------------------------

class TestCompileDateFormat:
    def test_translates_tokens(self):
        pattern, directive = compile_date_format("DD/MM/YYYY")
        assert directive == "%d/%m/%Y"
        assert pattern.fullmatch("05/03/2001")
        assert not pattern.fullmatch("5/3/2001")

    def test_single_digit_tokens(self):
        pattern, directive = compile_date_format("D-M-YYYY")
        assert directive == "%d-%m-%Y"
        assert pattern.fullmatch("5-3-2018")


class TestParseDateStrict:
    def test_exact_match(self):
        assert parse_date_strict("2001-03-05", "YYYY-MM-DD") == date(2001, 3, 5)

    def test_wrong_separator(self):
        assert parse_date_strict("2001/03/05", "YYYY-MM-DD") is None

    def test_impossible_day(self):
        assert parse_date_strict("31/02/2001", "DD/MM/YYYY") is None

    def test_single_digit_tokens_reject_leading_zero(self):
        assert parse_date_strict("05/3/2001", "D/M/YYYY") is None
        assert parse_date_strict("5/03/2001", "D/M/YYYY") is None
        assert parse_date_strict("12/10/2001", "D/M/YYYY") == date(2001, 10, 12)

    def test_two_digit_year_pivot(self):
        assert parse_date_strict("05/03/01", "DD/MM/YY") == date(2001, 3, 5)
        assert parse_date_strict("05/03/98", "DD/MM/YY") == date(1998, 3, 5)


class TestNormalizeDate:
    def test_datetime_cell(self):
        assert normalize_date(datetime(2018, 4, 2, 10, 0)) == "2018-04-02"

    def test_date_cell(self):
        assert normalize_date(date(2006, 1, 1)) == "2006-01-01"

    def test_day_first_text(self):
        assert normalize_date("05/03/2001") == "2001-03-05"

    def test_single_digit_text(self):
        assert normalize_date("5/3/2001") == "2001-03-05"

    def test_iso_text(self):
        assert normalize_date(" 2001-03-05 ") == "2001-03-05"

    def test_spreadsheet_serial(self):
        assert normalize_date(36951) == "2001-03-01"

    def test_mixed_padding_unparsed(self):
        assert normalize_date("05/3/2001", ["D/M/YYYY"]) is None
        assert normalize_date("05/3/2001") is None

    def test_unparseable_text(self):
        assert normalize_date("marzo 2001") is None

    def test_invalid_calendar_date(self):
        assert normalize_date("31/02/2001") is None

    def test_custom_formats_only(self):
        assert normalize_date("05-03-2018", ["DD-MM-YYYY"]) == "2018-03-05"
        assert normalize_date("05-03-2018", ["DD/MM/YYYY"]) is None

    def test_first_format_wins(self):
        # 01/02/2001 is valid both ways; format order decides
        assert normalize_date("01/02/2001", ["MM/DD/YYYY", "DD/MM/YYYY"]) == "2001-01-02"

    def test_none_and_empty(self):
        assert normalize_date(None) is None
        assert normalize_date("") is None
        assert normalize_date("   ") is None


# ---------------------------------------------------------------------------
# normalize_cell
# ---------------------------------------------------------------------------

class TestNormalizeCell:
    def test_number(self):
        assert normalize_cell(7.2) == CellValue(7.2, None)

    def test_numeric_text(self):
        assert normalize_cell("7,2") == CellValue(7.2, None)

    def test_free_text(self):
        assert normalize_cell(" trace ") == CellValue(None, "trace")

    def test_detection_limit_kept_as_text(self):
        assert normalize_cell("<0.01") == CellValue(None, "<0.01")

    def test_none_is_empty(self):
        assert normalize_cell(None).is_empty

    def test_whitespace_is_empty(self):
        assert normalize_cell("   ").is_empty

    def test_zero_is_not_empty(self):
        cell = normalize_cell(0)
        assert cell == CellValue(0.0, None)
        assert not cell.is_empty


# ---------------------------------------------------------------------------
# parse_header
# ---------------------------------------------------------------------------

class TestParseHeader:
    def test_unit_suffix(self):
        assert parse_header("Cloruros (mg/L)") == HeaderParts("Cloruros", "mg/L")

    def test_no_unit(self):
        assert parse_header("pH") == HeaderParts("pH", None)

    def test_surrounding_whitespace(self):
        assert parse_header("  CE  (µS/cm) ") == HeaderParts("CE", "µS/cm")

    def test_empty_parentheses(self):
        assert parse_header("Dureza ()") == HeaderParts("Dureza", None)

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_blank(self, header):
        assert parse_header(header) == HeaderParts(None, None)
