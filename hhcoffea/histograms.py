"""Histogram specification, creation, and filling for the HH analysis.

A histogram is stored under its name, which is also the name of its numeric
axis and the stem of its ROOT key.

Table rows are (name, bins, label, getter):
  - getter(record) -> values, where ``record`` is the per-event record built by
    ``HHAnalysis.build_event_record`` already restricted to the region.
    Getters may return None for events where the quantity does not exist
    (e.g. no dijet); those events are skipped for that histogram only.
"""

from typing import Callable

import awkward as ak
import hist
import numpy as np

from hhcoffea.analysis_config import (
    CATEGORIES,
    SEL_LEAD_LEPTON_PT,
    SEL_MIN_TWO_BJETS,
    SEL_MIN_TWO_JETS,
    SEL_OPPOSITE_SIGN,
    SEL_SUBLEAD_LEPTON_PT,
    SEL_TWO_LEPTONS,
)


Getter = Callable[[ak.Array], ak.Array]


def _nth(collection, n):
    """n-th entry per event, None where the collection is too short."""
    return ak.pad_none(collection, n + 1, axis=1)[:, n]


def _at(collection, idx):
    """Entry at a per-event index, None for NOT_FOUND."""
    return ak.firsts(collection[ak.local_index(collection, axis=1) == idx])


HIST_SPECS: list[tuple[str, tuple[int, float, float], str, Getter]] = [
    ("pt_leading_lepton",       (200,  0, 1000), r"$p_{T}$ of the leading lepton [GeV]",     lambda R: _nth(R.leptons, 0).pt),
    ("eta_leading_lepton",      (60,  -3,    3), r"$\\eta$ of the leading lepton",           lambda R: _nth(R.leptons, 0).eta),
    ("pt_subleading_lepton",    (200,  0, 1000), r"$p_{T}$ of the subleading lepton [GeV]",  lambda R: _nth(R.leptons, 1).pt),
    ("eta_subleading_lepton",   (60,  -3,    3), r"$\\eta$ of the subleading lepton",        lambda R: _nth(R.leptons, 1).eta),
    ("mass_dilepton",           (250,  0, 500),  r"$m_{\\ell\\ell}$ [GeV]",                lambda R: _nth(R.ll, 0).p4.mass),
    ("pt_dilepton",             (200,  0, 1000), r"$p_{T,\\ell\\ell}$ [GeV]",              lambda R: _nth(R.ll, 0).p4.pt),
    ("dr_dilepton",             (60,   0,    6), r"$\\Delta R_{\\ell\\ell}$",              lambda R: _nth(R.ll, 0).DR),
    ("mt_dilepton_met",         (200,  0, 1000), r"$m_{\\ell\\ell+MET}$ [GeV]",            lambda R: _nth(R.ll, 0).MT),
    ("projected_met",           (100,  0,  500), r"projected MET [GeV]",                      lambda R: _nth(R.ll, 0).projectedMet),
    ("pt_met",                  (100,  0,  500), r"MET [GeV]",                                lambda R: R.met.pt),
    ("pt_leading_jet",          (200,  0, 1000), r"$p_{T}$ of the leading jet [GeV]",        lambda R: _nth(R.jets, 0).pt),
    ("mass_dijet",              (250,  0, 500),  r"$m_{jj}$ (leading jets) [GeV]",            lambda R: _nth(R.jj, 0).p4.mass),
    ("mass_best_dijet",         (250,  0, 500),  r"$m_{jj}$ closest to $m_{H}$ [GeV]",      lambda R: _at(R.jj, R.h_dijet_idx).p4.mass),
    ("mass_best_dibjet",        (250,  0, 500),  r"$m_{bb}$ closest to $m_{H}$ [GeV]",      lambda R: _at(R.bb, R.h_dibjet_idx).p4.mass),
    ("dr_best_dibjet",          (60,   0,    6), r"$\\Delta R_{bb}$",                        lambda R: _at(R.bb, R.h_dibjet_idx).DR),
    ("mass_lljj",               (300,  0, 1500), r"$m_{\\ell\\ell jj}$ [GeV]",             lambda R: _nth(R.lljj, 0).p4.mass),
    ("mass_llbb",               (300,  0, 1500), r"$m_{\\ell\\ell bb}$ [GeV]",             lambda R: _at(R.llbb, R.h_dibjet_idx).p4.mass),
    ("cos_theta_star_llbb",     (50,  -1,    1), r"$\\cos\\theta^{*}_{CS}(\\ell\\ell, bb)$", lambda R: _at(R.llbb, R.h_dibjet_idx).cosThetaStar_CS),
    ("n_jets",                  (15,   0,   15), r"$N_{jets}$",                                lambda R: R.nJets),
    ("n_bjets",                 (10,   0,   10), r"$N_{b-jets}$",                              lambda R: R.nBJets),
]

# Truth-level quantities, only filled for simulation.
GEN_HIST_SPECS: list[tuple[str, tuple[int, float, float], str, Getter]] = [
    ("mass_gen_ll",             (250,  0, 500),  r"$m_{\\ell\\ell}^{gen}$ [GeV]",          lambda R: R.gen_LL.mass),
    ("mass_gen_bb",             (250,  0, 500),  r"$m_{bb}^{gen}$ [GeV]",                     lambda R: R.gen_BB.mass),
    ("mass_gen_bbfsr",          (250,  0, 500),  r"$m_{bb+FSR}^{gen}$ [GeV]",                 lambda R: R.gen_BBFSR.mass),
    ("mass_gen_llfsrnunubb",    (300,  0, 1500), r"$m_{\\ell\\ell\\nu\\nu bb}^{gen}$ [GeV]", lambda R: R.gen_LLFSRNuNuBB.mass),
]


def _booking_specs() -> dict[str, tuple[tuple[int, float, float], str]]:
    """Return histogram booking metadata keyed by canonical histogram name."""
    specs: dict[str, tuple[tuple[int, float, float], str]] = {}
    for name, bins, label, _ in HIST_SPECS + GEN_HIST_SPECS:
        specs[name] = (bins, label)
    return specs


def create_hist(name, bins, label):
    """Create a single physics histogram with standard categorical axes."""
    return (
        hist.Hist.new
        .StrCat([], name="process", label="Process", growth=True)
        .StrCat([], name="region",  label="Analysis Region", growth=True)
        .StrCat([], name="syst",    label="Systematic", growth=True)
        .Reg(*bins, name=name, label=label)
        .Weight()
    )


def fill_histograms(output, region, cut, process_name, record, syst_weights, *, is_mc):
    """Fill every histogram of the table for one region selection mask."""
    record_cut = record[cut]
    syst_weights_cut = {k: np.asarray(v)[cut] for k, v in syst_weights.items()}

    specs = HIST_SPECS + GEN_HIST_SPECS if is_mc else HIST_SPECS
    for hist_name, _bins, _label, expr in specs:
        vals = expr(record_cut)
        present = ak.to_numpy(~ak.is_none(vals, axis=0))
        vals = ak.to_numpy(ak.fill_none(vals[present], np.nan))
        for syst_label, sw in syst_weights_cut.items():
            output[hist_name].fill(
                process=process_name,
                region=region,
                syst=syst_label,
                **{hist_name: vals},
                weight=sw[present],
            )


def _relabel_cutflow(h_raw, cut_names):
    """Copy a coffea yield histogram onto a ``cut`` StrCategory axis named after the steps."""
    h = hist.Hist(
        hist.axis.StrCategory(cut_names, name="cut"),
        storage=h_raw.storage_type(),
    )
    h.view(flow=False)[...] = h_raw.view(flow=False)
    return h


def cutflow_chains():
    """Cumulative selection chain per dilepton category."""
    return {
        category: [
            SEL_TWO_LEPTONS,
            flavour,
            SEL_LEAD_LEPTON_PT,
            SEL_SUBLEAD_LEPTON_PT,
            SEL_OPPOSITE_SIGN,
            SEL_MIN_TWO_JETS,
            SEL_MIN_TWO_BJETS,
        ]
        for category, flavour in CATEGORIES.items()
    }


def fill_cutflows(output, selections, weights):
    """Build cumulative cutflows for the mumu, elel, elmu and muel categories.

    Output layout (keys under ``output["cutflow"]``):
        - per-category: ``mumu``, ``elel``, ``elmu``, ``muel``
            - ``onecut`` / ``cumulative`` (and unweighted variants)
              Multi-bin histograms with StrCategory axis (bin labels are
              the cut names, e.g. "no_cuts", "two_leptons", ...).
    """
    output.setdefault("cutflow", {})

    for category, steps in cutflow_chains().items():
        output["cutflow"].setdefault(category, {})
        bucket = output["cutflow"][category]

        cut_names = ["no_cuts"] + list(steps)

        cf = selections.cutflow(*steps, weights=weights)
        h_onecut_raw, h_cum_raw, _labels = cf.yieldhist(weighted=True)
        bucket["onecut"] = _relabel_cutflow(h_onecut_raw, cut_names)
        bucket["cumulative"] = _relabel_cutflow(h_cum_raw, cut_names)

        h_onecut_unw, h_cum_unw, _labels = cf.yieldhist(weighted=False)
        bucket["onecut_unweighted"] = _relabel_cutflow(h_onecut_unw, cut_names)
        bucket["cumulative_unweighted"] = _relabel_cutflow(h_cum_unw, cut_names)
