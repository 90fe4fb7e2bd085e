"""Tests for hhcoffea.save_hists — ROOT naming, histogram summing and truth counters."""

import logging
from types import SimpleNamespace

import hist
import pytest
import uproot

from hhcoffea.save_hists import (
    _folder_and_hist_names,
    _normalize_syst_name,
    _sum_cutflow_hists,
    log_truth_diagnostics,
    output_path,
    save_histograms,
    split_hists_with_syst,
    sum_hists,
    sum_truth_diagnostics,
)


def _create_test_hist(name="test"):
    """Histogram with the standard categorical axes."""
    return (
        hist.Hist.new
        .StrCat([], name="process", growth=True)
        .StrCat([], name="region", growth=True)
        .StrCat([], name="syst", growth=True)
        .Reg(100, 0, 500, name=name)
        .Weight()
    )


def _cutflow_hist(values):
    h = hist.Hist(hist.axis.StrCategory(list(values), name="cut"), storage=hist.storage.Weight())
    for cut, w in values.items():
        h.fill(cut=cut, weight=w)
    return h


def _args(**overrides):
    args = SimpleNamespace(era="RunIISummer20UL18", sample="TTbar", dir=None, name=None)
    for k, v in overrides.items():
        setattr(args, k, v)
    return args


# ---------------------------------------------------------------------------
# ROOT naming
# ---------------------------------------------------------------------------

class TestNormalizeSystName:
    def test_camelcase(self):
        assert _normalize_syst_name("LumiUp") == "lumiup"

    def test_special_chars_dropped(self):
        assert _normalize_syst_name("Lumi_Down-1") == "lumidown1"


class TestFolderAndHistNames:
    def test_nominal(self):
        folder, hname = _folder_and_hist_names("mumu", "Nominal", "mass_dilepton")
        assert folder == "mumu"
        assert hname == "mass_dilepton_mumu"

    def test_systematic(self):
        folder, hname = _folder_and_hist_names("elmu", "LumiDown", "mass_llbb")
        assert folder == "syst_lumidown_elmu"
        assert hname == "mass_llbb_syst_lumidown_elmu"


class TestOutputPath:
    def test_default(self):
        path = output_path(_args())
        assert path.as_posix() == "HH_Plotter/rootfiles/RunII/2018/RunIISummer20UL18/HHAnalyzer_TTbar.root"

    def test_dir_and_name(self):
        path = output_path(_args(era="RunIISummer20UL16APV", dir="v2", name="test", sample="all"))
        assert path.as_posix() == "HH_Plotter/rootfiles/RunII/2016/RunIISummer20UL16APV/v2/HHAnalyzer_test_all.root"

    def test_unsupported_era_raises(self):
        with pytest.raises(ValueError, match="Unsupported era"):
            output_path(_args(era="Run3Summer22"))


# ---------------------------------------------------------------------------
# Summing
# ---------------------------------------------------------------------------

class TestSumHists:
    def test_multiple_datasets_sum_correctly(self):
        h1 = _create_test_hist("mass_dilepton")
        h1.fill(process="TTbar", region="mumu", syst="Nominal", mass_dilepton=50.0, weight=2.0)
        h2 = _create_test_hist("mass_dilepton")
        h2.fill(process="TTbar", region="mumu", syst="Nominal", mass_dilepton=50.0, weight=3.0)

        summed = sum_hists({"d1": {"mass_dilepton": h1}, "d2": {"mass_dilepton": h2}})
        assert summed["mass_dilepton"].sum().value == pytest.approx(5.0)

    def test_inputs_not_modified(self):
        h1 = _create_test_hist("mass_dilepton")
        h1.fill(process="TTbar", region="mumu", syst="Nominal", mass_dilepton=50.0, weight=2.0)
        h2 = _create_test_hist("mass_dilepton")
        h2.fill(process="TTbar", region="mumu", syst="Nominal", mass_dilepton=50.0, weight=3.0)

        sum_hists({"d1": {"mass_dilepton": h1}, "d2": {"mass_dilepton": h2}})
        assert h1.sum().value == pytest.approx(2.0)

    def test_non_hist_payloads_skipped(self):
        h1 = _create_test_hist("mass_dilepton")
        my_hists = {
            "d1": {
                "mass_dilepton": h1,
                "cutflow": {"mumu": {}},
                "truth_diagnostics": {"events": 3, "unfilled": {}},
            }
        }
        summed = sum_hists(my_hists)
        assert set(summed) == {"mass_dilepton"}

    def test_empty_raises(self):
        with pytest.raises(ValueError, match="No histogram data provided"):
            sum_hists({})


class TestSplitHistsWithSyst:
    def test_split_by_region_and_syst(self):
        h = _create_test_hist("pt_met")
        h.fill(process="Signal", region="elel", syst="Nominal", pt_met=40.0, weight=1.0)
        h.fill(process="Signal", region="muel", syst="LumiUp", pt_met=40.0, weight=1.2)

        split = split_hists_with_syst({"pt_met": h})
        assert ("elel", "Nominal", "pt_met") in split
        assert ("muel", "LumiUp", "pt_met") in split

    def test_process_axis_projected_out(self):
        h = _create_test_hist("pt_met")
        h.fill(process="Signal", region="elel", syst="Nominal", pt_met=40.0, weight=1.0)
        h.fill(process="TTbar", region="elel", syst="Nominal", pt_met=60.0, weight=2.0)

        split = split_hists_with_syst({"pt_met": h}, sum_over_process=True)
        h_split = split[("elel", "Nominal", "pt_met")]
        assert [ax.name for ax in h_split.axes] == ["pt_met"]
        assert h_split.sum().value == pytest.approx(3.0)

    def test_missing_axis_skipped(self):
        h = hist.Hist.new.Reg(10, 0, 10, name="x").Weight()
        assert split_hists_with_syst({"x": h}) == {}


class TestSumCutflowHists:
    def test_nested_sum(self):
        my_hists = {
            "d1": {"cutflow": {"mumu": {"onecut": _cutflow_hist({"no_cuts": 1.0, "two_leptons": 2.0})}}},
            "d2": {"cutflow": {"mumu": {"onecut": _cutflow_hist({"no_cuts": 3.0, "two_leptons": 4.0})}}},
        }
        summed = _sum_cutflow_hists(my_hists)
        h = summed["mumu"]["onecut"]
        assert h[{"cut": "no_cuts"}].value == pytest.approx(4.0)
        assert h[{"cut": "two_leptons"}].value == pytest.approx(6.0)

    def test_no_cutflow(self):
        assert _sum_cutflow_hists({"d1": {"mass_dilepton": None}}) == {}


# ---------------------------------------------------------------------------
# Truth diagnostics
# ---------------------------------------------------------------------------

class TestTruthDiagnostics:
    def test_counters_summed_over_datasets(self):
        my_hists = {
            "sig1": {"truth_diagnostics": {"events": 10, "unfilled": {"X": 10, "H1": 0}}},
            "sig2": {"truth_diagnostics": {"events": 5, "unfilled": {"X": 5, "H1": 1}}},
            "data": {"mass_dilepton": None},
        }
        total = sum_truth_diagnostics(my_hists)
        assert total == {"events": 15, "unfilled": {"X": 15, "H1": 1}}

    def test_warning_per_unfilled_slot(self, caplog):
        with caplog.at_level(logging.WARNING, logger="hhcoffea.save_hists"):
            log_truth_diagnostics({"events": 15, "unfilled": {"X": 15, "H1": 0}})
        assert "Truth slot X unfilled in 15 / 15 events" in caplog.text
        assert "H1" not in caplog.text

    def test_no_events_is_silent(self, caplog):
        with caplog.at_level(logging.WARNING, logger="hhcoffea.save_hists"):
            log_truth_diagnostics({"events": 0, "unfilled": {}})
        assert caplog.text == ""


# ---------------------------------------------------------------------------
# ROOT I/O
# ---------------------------------------------------------------------------

class TestSaveHistogramsIntegration:
    def test_root_file_layout(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        h = _create_test_hist("mass_dilepton")
        h.fill(process="TTbar", region="mumu", syst="Nominal", mass_dilepton=91.0, weight=1.5)
        h.fill(process="TTbar", region="mumu", syst="LumiUp", mass_dilepton=91.0, weight=1.6)
        my_hists = {
            "d1": {
                "mass_dilepton": h,
                "cutflow": {"mumu": {"cumulative": _cutflow_hist({"no_cuts": 2.0})}},
            }
        }

        path = save_histograms(my_hists, _args())
        assert path == output_path(_args())
        with uproot.open(tmp_path / path) as f:
            assert "mumu/mass_dilepton_mumu" in f
            assert "syst_lumiup_mumu/mass_dilepton_syst_lumiup_mumu" in f
            assert "cutflow/mumu/cumulative" in f
            assert f["mumu/mass_dilepton_mumu"].values().sum() == pytest.approx(1.5)
