"""Tests for hhcoffea.era_utils — era mapping and JSON loading."""

import json

import pytest

from hhcoffea.era_utils import ERA_MAPPING, get_era_details, load_json


class TestGetEraDetails:
    def test_ul18(self):
        run, year, era = get_era_details("RunIISummer20UL18")
        assert run == "RunII"
        assert year == "2018"
        assert era == "RunIISummer20UL18"

    def test_ul16_apv(self):
        run, year, _ = get_era_details("RunIISummer20UL16APV")
        assert (run, year) == ("RunII", "2016")

    def test_unsupported_era_raises(self):
        with pytest.raises(ValueError, match="Unsupported era"):
            get_era_details("RunIV2030")

    def test_all_mapped_eras_resolve(self):
        for era_key in ERA_MAPPING:
            run, year, era = get_era_details(era_key)
            assert run
            assert year
            assert era == era_key


class TestLoadJson:
    def test_roundtrip(self, tmp_path):
        path = tmp_path / "fileset.json"
        path.write_text(json.dumps({"ds": {"files": {}}}), encoding="utf-8")
        assert load_json(path) == {"ds": {"files": {}}}

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(RuntimeError, match="Failed to read JSON file"):
            load_json(tmp_path / "nope.json")

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(RuntimeError, match="Failed to read JSON file"):
            load_json(path)
