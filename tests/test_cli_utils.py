"""Tests for hhcoffea.cli_utils — era listing, filtering and fileset loading."""

import json

import pytest

from hhcoffea.cli_utils import ALL_SAMPLES, filter_by_process, list_eras, load_and_select_fileset
from hhcoffea.era_utils import ERA_MAPPING


def _fileset():
    def entry(sample, group, datatype, n_files=1):
        md = {"sample": sample, "physics_group": group, "datatype": datatype}
        if datatype == "mc":
            md.update({"xsec": 1.0, "genEventSumw": 10.0, "era": "RunIISummer20UL18"})
        files = {f"/store/{sample}_{i}.root": "Events" for i in range(n_files)}
        return {"files": files, "metadata": md}

    return {
        "sig": entry("GluGluToHH", "Signal", "mc", n_files=3),
        "tt": entry("TTTo2L2Nu", "TTbar", "mc"),
        "dmu": entry("DoubleMuon_2018A", "DoubleMuon", "data"),
    }


# ---------------------------------------------------------------------------
# list_eras
# ---------------------------------------------------------------------------

class TestListEras:
    def test_matches_mapping_order(self):
        assert list_eras() == list(ERA_MAPPING)


# ---------------------------------------------------------------------------
# filter_by_process
# ---------------------------------------------------------------------------

class TestFilterByProcess:
    def test_all_keeps_everything(self):
        assert set(filter_by_process(_fileset(), ALL_SAMPLES)) == {"sig", "tt", "dmu"}

    def test_none_keeps_everything(self):
        assert set(filter_by_process(_fileset(), None)) == {"sig", "tt", "dmu"}

    def test_by_physics_group(self):
        assert set(filter_by_process(_fileset(), "TTbar")) == {"tt"}

    def test_by_sample_name(self):
        assert set(filter_by_process(_fileset(), "DoubleMuon_2018A")) == {"dmu"}

    def test_no_match(self):
        assert filter_by_process(_fileset(), "WJets") == {}


# ---------------------------------------------------------------------------
# load_and_select_fileset
# ---------------------------------------------------------------------------

class TestLoadAndSelectFileset:
    def _write(self, tmp_path, data):
        path = tmp_path / "fileset.json"
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Fileset JSON not found"):
            load_and_select_fileset(filepath=tmp_path / "missing.json", desired_process=ALL_SAMPLES)

    def test_selects_sample(self, tmp_path):
        path = self._write(tmp_path, _fileset())
        selected = load_and_select_fileset(filepath=path, desired_process="Signal")
        assert list(selected) == ["sig"]

    def test_empty_selection_raises(self, tmp_path):
        path = self._write(tmp_path, _fileset())
        with pytest.raises(ValueError, match="0 datasets"):
            load_and_select_fileset(filepath=path, desired_process="WJets")

    def test_invalid_schema_raises(self, tmp_path):
        path = self._write(tmp_path, {"sig": {"files": {"/store/x.root": "Events"}, "metadata": {"sample": "x"}}})
        with pytest.raises(ValueError, match="datatype"):
            load_and_select_fileset(filepath=path, desired_process=ALL_SAMPLES)

    def test_maxfiles(self, tmp_path):
        path = self._write(tmp_path, _fileset())
        selected = load_and_select_fileset(filepath=path, desired_process="Signal", maxfiles=1)
        assert len(selected["sig"]["files"]) == 1
        assert selected["sig"]["metadata"]["sample"] == "GluGluToHH"
