"""Unit tests for groundwater_etl.campaigns."""

from __future__ import annotations

import textwrap
from datetime import datetime
from pathlib import Path

import pytest
import yaml

from groundwater_etl.campaigns import (
    CampaignProfile,
    CampaignProfileError,
    load_campaign_profile,
    validate_campaign_profile,
)
from groundwater_etl.store import WellInput

PROJECT_ROOT = Path(__file__).parent.parent.parent
CAMPAIGN_DIR = PROJECT_ROOT / "config" / "campaigns"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

MINIMAL_YAML = textwrap.dedent("""\
    campaign: TEST_2010
    default_year: 2010
    well_columns:
      well_code: Codigo
      x: X
      y: Y
    sample_columns:
      date: Fecha
""")


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "profile.yml"
    path.write_text(text, encoding="utf-8")
    return path


def _data(**overrides):
    data = yaml.safe_load(MINIMAL_YAML)
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

class TestLoadCampaignProfile:
    def test_minimal_defaults(self, tmp_path):
        profile = load_campaign_profile(_write(tmp_path, MINIMAL_YAML))
        assert profile.campaign == "TEST_2010"
        assert profile.source_code == "TEST_2010"
        assert profile.default_year == 2010
        assert profile.date_fallback == "none"
        assert profile.spatial_tolerance == 1.0
        assert profile.alias_fallbacks == {}
        assert "DD/MM/YYYY" in profile.date_formats

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_campaign_profile(tmp_path / "absent.yml")

    @pytest.mark.parametrize("name", [
        "ga_calidad_2001.yml",
        "ga_calidad_tesis_2006.yml",
        "ga_calidad_fp_2018.yml",
    ])
    def test_shipped_profiles_load(self, name):
        profile = load_campaign_profile(CAMPAIGN_DIR / name)
        assert profile.campaign.startswith("GA_calidad_")
        assert profile.source_files

    def test_2018_has_ph_fallback(self):
        profile = load_campaign_profile(CAMPAIGN_DIR / "ga_calidad_fp_2018.yml")
        assert profile.alias_fallbacks == {"pH": "ph"}

    def test_meta_columns(self):
        profile = load_campaign_profile(CAMPAIGN_DIR / "ga_calidad_tesis_2006.yml")
        assert profile.meta_columns == frozenset(
            {"Distrito", "X", "Y", "Año", "No", "Contaminación?"}
        )


class TestValidateCampaignProfile:
    def test_valid(self):
        validate_campaign_profile(_data())

    def test_root_not_mapping(self):
        with pytest.raises(CampaignProfileError, match="mapping"):
            validate_campaign_profile(["campaign"])

    def test_missing_keys(self):
        data = _data()
        del data["default_year"]
        with pytest.raises(CampaignProfileError, match="default_year"):
            validate_campaign_profile(data)

    def test_blank_campaign(self):
        with pytest.raises(CampaignProfileError, match="blank"):
            validate_campaign_profile(_data(campaign="  "))

    def test_bad_year(self):
        with pytest.raises(CampaignProfileError, match="not an integer"):
            validate_campaign_profile(_data(default_year="two thousand"))

    def test_unknown_well_field(self):
        with pytest.raises(CampaignProfileError, match="Unknown well_columns"):
            validate_campaign_profile(_data(well_columns={"owner": "Dueño"}))

    def test_unknown_sample_field(self):
        with pytest.raises(CampaignProfileError, match="Unknown sample_columns"):
            validate_campaign_profile(_data(sample_columns={"hour": "Hora"}))

    def test_bad_date_fallback(self):
        with pytest.raises(CampaignProfileError, match="date_fallback"):
            validate_campaign_profile(_data(date_fallback="today"))

    def test_negative_tolerance(self):
        with pytest.raises(CampaignProfileError, match=">= 0"):
            validate_campaign_profile(_data(spatial_tolerance=-1))

    def test_fallbacks_must_be_mapping(self):
        with pytest.raises(CampaignProfileError, match="alias_fallbacks"):
            validate_campaign_profile(_data(alias_fallbacks=["pH"]))


# ---------------------------------------------------------------------------
# Row adapters
# ---------------------------------------------------------------------------

def _profile(**overrides) -> CampaignProfile:
    kwargs = dict(
        campaign="TEST_2010",
        source_code="TEST_2010",
        default_year=2010,
        well_columns={"well_code": "Codigo", "locality": "Localidad", "x": "X", "y": "Y"},
        sample_columns={"date": "Fecha", "year": "Año"},
    )
    kwargs.update(overrides)
    return CampaignProfile(**kwargs)


class TestBuildWellInput:
    def test_maps_and_normalizes(self):
        well = _profile().build_well_input({
            "Codigo": 12.0,
            "Localidad": "  Cerrillos ",
            "X": "350000,5",
            "Y": 8500000,
        })
        assert well == WellInput(
            well_code="12",
            source_code="TEST_2010",
            locality="Cerrillos",
            x=350000.5,
            y=8500000.0,
        )

    def test_free_text_whitespace_collapsed(self):
        well = _profile(well_columns={"district": "Distrito", "locality": "Localidad"}).build_well_input(
            {"Distrito": " Cerro  Colorado ", "Localidad": "San\t Juan"}
        )
        assert well.district == "Cerro Colorado"
        assert well.locality == "San Juan"

    def test_unmapped_fields_are_none(self):
        well = _profile().build_well_input({"Codigo": "P-1"})
        assert well.district is None
        assert well.x is None
        assert well.depth_m is None


class TestSampleDateAndYear:
    def test_date_cell_sets_year(self):
        result = _profile().sample_date_and_year({"Fecha": datetime(2009, 11, 3)})
        assert result == ("2009-11-03", 2009, False)

    def test_text_date(self):
        result = _profile().sample_date_and_year({"Fecha": "03/11/2009"})
        assert result == ("2009-11-03", 2009, False)

    def test_year_column_without_date(self):
        result = _profile().sample_date_and_year({"Fecha": None, "Año": 2008.0})
        assert result == (None, 2008, True)

    def test_default_year(self):
        result = _profile().sample_date_and_year({"Fecha": "sin fecha"})
        assert result == (None, 2010, True)

    def test_year_start_fallback(self):
        profile = _profile(date_fallback="year_start")
        assert profile.sample_date_and_year({"Año": "2006"}) == ("2006-01-01", 2006, True)
        assert profile.sample_date_and_year({}) == ("2010-01-01", 2010, True)

    def test_profile_formats_used(self):
        profile = _profile(date_formats=["DD-MM-YYYY"])
        assert profile.sample_date_and_year({"Fecha": "03-11-2009"})[0] == "2009-11-03"
        assert profile.sample_date_and_year({"Fecha": "03/11/2009"})[0] is None
