"""Tests for hhcoffea.fileset_validation — schema and selection checks."""

import pytest

from hhcoffea.fileset_validation import validate_fileset_schema, validate_selection


def _valid_fileset():
    return {
        "ttbar": {
            "files": {"/path/ttbar.root": "Events"},
            "metadata": {
                "sample": "TTTo2L2Nu",
                "physics_group": "TTbar",
                "datatype": "mc",
                "era": "RunIISummer20UL18",
                "xsec": 87.3,
                "genEventSumw": 1.0e6,
            },
        },
        "data": {
            "files": {"/path/data.root": "Events"},
            "metadata": {"sample": "DoubleMuon_2018A", "physics_group": "DoubleMuon", "datatype": "data"},
        },
    }


class TestValidateFilesetSchema:
    def test_valid(self):
        validate_fileset_schema(_valid_fileset())

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="empty"):
            validate_fileset_schema({})

    def test_non_dict_raises(self):
        with pytest.raises(ValueError, match="dict-like"):
            validate_fileset_schema([1, 2, 3])

    def test_missing_files_raises(self):
        bad = {"ds1": {"metadata": {"sample": "x", "datatype": "data"}}}
        with pytest.raises(ValueError, match="files"):
            validate_fileset_schema(bad)

    def test_missing_metadata_raises(self):
        bad = {"ds1": {"files": {"/path.root": "Events"}}}
        with pytest.raises(ValueError, match="metadata"):
            validate_fileset_schema(bad)

    def test_missing_datatype_raises(self):
        bad = {"ds1": {"files": {"/path.root": "Events"}, "metadata": {"sample": "x"}}}
        with pytest.raises(ValueError, match="datatype"):
            validate_fileset_schema(bad)

    def test_unknown_datatype_raises(self):
        bad = _valid_fileset()
        bad["data"]["metadata"]["datatype"] = "embedded"
        with pytest.raises(ValueError, match="'mc' or 'data'"):
            validate_fileset_schema(bad)

    def test_mc_without_normalization_raises(self):
        bad = _valid_fileset()
        del bad["ttbar"]["metadata"]["genEventSumw"]
        with pytest.raises(ValueError, match="genEventSumw"):
            validate_fileset_schema(bad)

    def test_filepath_in_message(self):
        with pytest.raises(ValueError, match="my_fileset.json"):
            validate_fileset_schema({}, filepath="my_fileset.json")


class TestValidateSelection:
    def test_nonempty_passes(self):
        validate_selection(_valid_fileset(), desired_process="TTbar")

    def test_empty_raises_with_available_groups(self):
        with pytest.raises(ValueError, match="0 datasets") as excinfo:
            validate_selection(
                {},
                desired_process="Signal",
                preprocessed_fileset=_valid_fileset(),
            )
        assert "DoubleMuon" in str(excinfo.value)
        assert "TTbar" in str(excinfo.value)


class TestDatasetEntries:
    def test_empty_file_map_raises(self):
        bad = _valid_fileset()
        bad["data"]["files"] = {}
        with pytest.raises(ValueError, match="no input files"):
            validate_fileset_schema(bad)

    def test_non_numeric_xsec_raises(self):
        bad = _valid_fileset()
        bad["ttbar"]["metadata"]["xsec"] = "87.3"
        with pytest.raises(ValueError, match="must be a number"):
            validate_fileset_schema(bad)

    def test_data_needs_no_normalization(self):
        fileset = _valid_fileset()
        del fileset["ttbar"]
        validate_fileset_schema(fileset)

    def test_datatype_case_insensitive(self):
        fileset = _valid_fileset()
        fileset["ttbar"]["metadata"]["datatype"] = " MC "
        validate_fileset_schema(fileset)
