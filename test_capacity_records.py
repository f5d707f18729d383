"""Test suite for capacity_records.py: loading snapshots from dicts and DataFrames."""

from datetime import date

import numpy as np
import pandas as pd
import pytest

from capacity_engine import DEFAULT_PERCENTAGE, NATIONAL_REGION, summarize
from capacity_records import (
    clean_id,
    clean_str,
    load_assignments,
    load_data,
    load_holidays,
    load_persons,
    load_projects,
    normalize_columns,
    parse_percentage,
    validate_records,
)


# ── Helpers ─────────────────────────────────────────────────────────────────


class TestCleanStr:
    def test_normal_string(self):
        assert clean_str("hello") == "hello"

    def test_strips_whitespace(self):
        assert clean_str("  hello  ") == "hello"

    def test_none_and_nan(self):
        assert clean_str(None) == ""
        assert clean_str(float("nan")) == ""
        assert clean_str(pd.NaT) == ""

    def test_number_to_string(self):
        assert clean_str(42) == "42"


class TestCleanId:
    def test_blank_is_none(self):
        assert clean_id(None) is None
        assert clean_id("  ") is None
        assert clean_id(float("nan")) is None

    def test_whole_float_becomes_int(self):
        assert clean_id(7.0) == 7

    def test_numpy_scalar(self):
        assert clean_id(np.int64(3)) == 3
        assert type(clean_id(np.int64(3))) is int

    def test_uuid_string(self):
        assert clean_id(" 1b9d-44 ") == "1b9d-44"


class TestParsePercentage:
    def test_int(self):
        assert parse_percentage(60) == 60

    def test_percent_sign(self):
        assert parse_percentage("60%") == 60

    def test_blank_defaults(self):
        assert parse_percentage(None) == DEFAULT_PERCENTAGE
        assert parse_percentage("") == DEFAULT_PERCENTAGE
        assert parse_percentage(float("nan")) == DEFAULT_PERCENTAGE

    def test_fraction_rounded_with_warning(self, capsys):
        assert parse_percentage(49.6, context="row 2") == 50
        assert "WARNING" in capsys.readouterr().out

    def test_garbage_raises(self):
        with pytest.raises(ValueError, match="row 3"):
            parse_percentage("half", context="row 3")


class TestNormalizeColumns:
    def test_exact_match(self):
        df = pd.DataFrame(columns=["id", "name"])
        assert normalize_columns(df, {"id", "name"}) == set()

    def test_case_and_spacing(self):
        df = pd.DataFrame(columns=["  ID ", "Start Date"])
        missing = normalize_columns(df, {"id", "start_date"})
        assert missing == set()
        assert list(df.columns) == ["id", "start_date"]

    def test_aliases(self):
        df = pd.DataFrame(columns=["fecha", "festivo", "comunidad_autonoma"])
        missing = normalize_columns(df, {"date", "label", "region"},
                                    {"date": ["fecha"], "label": ["festivo"],
                                     "region": ["comunidad_autonoma"]})
        assert missing == set()
        assert "region" in df.columns

    def test_exact_name_beats_alias(self):
        df = pd.DataFrame(columns=["person_id", "id"])
        normalize_columns(df, {"id"}, {"id": ["person_id"]})
        assert list(df.columns) == ["person_id", "id"]

    def test_missing_column(self):
        df = pd.DataFrame(columns=["id"])
        assert normalize_columns(df, {"id", "name"}) == {"name"}


# ── Loaders ─────────────────────────────────────────────────────────────────


class TestLoadPersons:
    def test_dicts_with_spanish_fields(self):
        persons = load_persons([
            {"id": "u1", "nombre": "GARCIA, ANA", "oficina": "Madrid", "categoria": "Senior"},
        ])
        assert persons == [{"id": "u1", "name": "GARCIA, ANA", "office": "Madrid"}]

    def test_dataframe_with_mixed_case_headers(self):
        df = pd.DataFrame({"ID": [1, 2], "Name": [" Ana ", "Luis"], "Office": ["Madrid", None]})
        persons = load_persons(df)
        assert persons[0] == {"id": 1, "name": "Ana", "office": "Madrid"}
        assert persons[1]["office"] == ""

    def test_does_not_mutate_input_frame(self):
        df = pd.DataFrame({"ID": [1], "Name": ["Ana"]})
        load_persons(df)
        assert list(df.columns) == ["ID", "Name"]

    def test_blank_rows_skipped(self):
        persons = load_persons([{"id": "u1", "name": "Ana"}, {"id": None, "name": None}])
        assert len(persons) == 1

    def test_missing_id_warns(self, capsys):
        persons = load_persons([{"id": None, "name": "Ghost"}])
        assert persons == []
        assert "Ghost" in capsys.readouterr().out

    def test_duplicate_ids_keep_first(self, capsys):
        persons = load_persons([{"id": "u1", "name": "Ana"}, {"id": "u1", "name": "Other"}])
        assert [p["name"] for p in persons] == ["Ana"]
        assert "duplicate" in capsys.readouterr().out

    def test_missing_required_field(self, capsys):
        assert load_persons([{"nombre": "Ana"}]) == []
        assert "ERROR" in capsys.readouterr().out

    def test_empty_input(self):
        assert load_persons([]) == []
        assert load_persons(None) == []
        assert load_persons(pd.DataFrame()) == []


class TestLoadProjects:
    def test_spanish_fields(self):
        projects = load_projects([{"id": "p1", "codigo_inicial": "PRJ-01", "denominacion": "Migración"}])
        assert projects == [{"id": "p1", "code": "PRJ-01", "name": "Migración", "type": ""}]

    def test_tipologia_becomes_type(self):
        projects = load_projects([{"id": "p1", "codigo_inicial": "PRJ-01", "denominacion": "Portal",
                                   "tipologia": " Facturable Cliente "}])
        assert projects[0]["type"] == "Facturable Cliente"


class TestLoadAssignments:
    def test_iso_strings_parsed(self):
        assignments = load_assignments([{
            "id": "a1", "person_id": "u1", "project_id": "p1",
            "start_date": "2024-01-01", "end_date": "2024-01-10", "hours_allocated": 70,
        }])
        a = assignments[0]
        assert a["start_date"] == date(2024, 1, 1)
        assert a["end_date"] == date(2024, 1, 10)
        assert a["percentage"] == 70

    def test_camel_case_fields(self):
        assignments = load_assignments([{
            "id": "a1", "personId": "u1", "projectId": "p1",
            "startDate": "2024-01-01", "endDate": "2024-01-02", "allocatedPercentage": 40,
        }])
        assert assignments[0]["person_id"] == "u1"
        assert assignments[0]["percentage"] == 40

    def test_percentage_defaults_to_100(self):
        assignments = load_assignments([{
            "person_id": "u1", "project_id": "p1",
            "start_date": "2024-01-01", "end_date": "2024-01-02",
        }])
        assert assignments[0]["percentage"] == DEFAULT_PERCENTAGE
        assert assignments[0]["id"] is None

    def test_timestamp_columns(self):
        df = pd.DataFrame({
            "person_id": ["u1"], "project_id": ["p1"],
            "start_date": pd.to_datetime(["2024-01-01"]),
            "end_date": pd.to_datetime(["2024-01-05"]),
            "percentage": [50],
        })
        a = load_assignments(df)[0]
        assert a["start_date"] == date(2024, 1, 1)
        assert type(a["start_date"]) is date
        assert a["percentage"] == 50
        assert type(a["percentage"]) is int

    def test_malformed_date_raises_with_row(self):
        with pytest.raises(ValueError, match="Assignments row 2"):
            load_assignments([
                {"person_id": "u1", "project_id": "p1", "start_date": "2024-01-01", "end_date": "2024-01-02"},
                {"person_id": "u1", "project_id": "p1", "start_date": "2024-31-01", "end_date": "2024-02-02"},
            ])

    def test_missing_person_skipped(self, capsys):
        assignments = load_assignments([
            {"person_id": None, "project_id": "p1", "start_date": "2024-01-01", "end_date": "2024-01-02"},
        ])
        assert assignments == []
        assert "WARNING" in capsys.readouterr().out


class TestLoadHolidays:
    def test_regions_normalized(self):
        holidays = load_holidays([
            {"date": "2024-01-01", "festivo": "Año Nuevo", "comunidad_autonoma": "", "pais": "España"},
            {"date": "2024-01-06", "festivo": "Reyes", "comunidad_autonoma": "NACIONAL", "pais": "España"},
            {"date": "2024-05-02", "festivo": "Comunidad", "comunidad_autonoma": " Madrid ", "pais": "España"},
            {"date": "2024-03-19", "festivo": "San José", "pais": "España"},
        ])
        assert [h["region"] for h in holidays] == [NATIONAL_REGION, NATIONAL_REGION, "Madrid", NATIONAL_REGION]
        assert holidays[0]["label"] == "Año Nuevo"
        assert holidays[0]["country"] == "España"

    def test_dataframe_with_nan_region(self):
        df = pd.DataFrame({"date": ["2024-01-01", "2024-05-02"], "region": [np.nan, "Madrid"]})
        holidays = load_holidays(df)
        assert holidays[0]["region"] == NATIONAL_REGION
        assert holidays[1]["region"] == "Madrid"

    def test_day_first_format(self):
        holidays = load_holidays([{"fecha": "02/05/2024", "comunidad_autonoma": "Madrid"}])
        assert holidays[0]["date"] == date(2024, 5, 2)

    def test_loaded_records_drive_summary(self):
        persons = load_persons([{"id": "u1", "nombre": "Ana", "oficina": "Madrid"}])
        holidays = load_holidays([
            {"date": "2024-01-01", "comunidad_autonoma": ""},
            {"date": "2024-01-02", "comunidad_autonoma": "Madrid"},
            {"date": "2024-01-03", "comunidad_autonoma": "Cataluña"},
        ])
        s = summarize("u1", persons[0]["office"], "2024-01-01", "2024-01-07", [], holidays, [])
        assert s["holiday_days"] == 2
        assert s["work_days"] == 3


class TestLoadData:
    def test_load_summary_printed(self, capsys):
        persons, projects, assignments, holidays = load_data(
            [{"id": "u1", "name": "Ana", "office": "Madrid"}],
            [{"id": "p1", "code": "P1", "name": "Alpha"}],
            [{"person_id": "u1", "project_id": "p1", "start_date": "2024-01-01", "end_date": "2024-01-05"}],
            [{"date": "2024-01-01"}, {"date": "2024-05-02", "region": "Madrid"}],
        )
        out = capsys.readouterr().out
        assert "Persons: 1" in out
        assert "Holidays: 2 (1 national, 1 regional)" in out
        assert len(assignments) == 1


# ── Validation ──────────────────────────────────────────────────────────────


class TestValidateRecords:
    PERSONS = [{"id": "u1", "name": "Ana", "office": "Madrid"},
               {"id": "u2", "name": "Luis", "office": "Bilbao"}]
    PROJECTS = [{"id": "p1", "code": "P1", "name": "Alpha"}]

    @staticmethod
    def _assignment(**overrides):
        base = {"id": "a1", "person_id": "u1", "project_id": "p1",
                "start_date": date(2024, 1, 1), "end_date": date(2024, 1, 5), "percentage": 50}
        base.update(overrides)
        return base

    def test_clean_data(self):
        errors, warnings = validate_records(self.PERSONS, self.PROJECTS, [self._assignment()])
        assert errors == []
        assert warnings == []

    def test_unknown_references(self):
        errors, _ = validate_records(self.PERSONS, self.PROJECTS,
                                     [self._assignment(person_id="zz", project_id="qq")])
        assert any("zz" in e for e in errors)
        assert any("qq" in e for e in errors)

    def test_inverted_range(self):
        errors, _ = validate_records(self.PERSONS, self.PROJECTS,
                                     [self._assignment(start_date=date(2024, 1, 9))])
        assert any("after end date" in e for e in errors)

    def test_percentage_out_of_range_warns(self):
        errors, warnings = validate_records(self.PERSONS, self.PROJECTS,
                                            [self._assignment(percentage=150)])
        assert errors == []
        assert any("150" in w for w in warnings)

    def test_weekend_holiday_and_missing_region_warn(self):
        holidays = [
            {"date": date(2024, 1, 6), "label": "Reyes", "region": NATIONAL_REGION, "country": "ES"},
            {"date": date(2024, 5, 2), "label": "Comunidad", "region": "Madrid", "country": "ES"},
        ]
        _, warnings = validate_records(self.PERSONS, self.PROJECTS, [], holidays)
        assert any("2024-01-06" in w and "weekend" in w for w in warnings)
        assert any("Bilbao" in w for w in warnings)
        assert not any("'Madrid'" in w for w in warnings)
