"""HH Coffea analysis processor.

This module implements the Coffea `ProcessorABC` for the HH → ℓℓbb(νν) analysis.

High-level flow per chunk:
    1) Build the selected lepton, jet, b-jet and MET objects.
    2) Enumerate dileptons, dijets, b-dijets and the four-body lljj / llbb
       systems with their angular and missing-energy observables.
    3) For simulation, resolve the generator truth chain and the ΔR of every
       reconstructed object to the truth legs.
    4) Build the dilepton-category PackedSelection and the event weights.
    5) Fill histograms, cutflows and truth diagnostics (and optionally write
       the per-event record as a ROOT tree).

Output:
    - One histogram per observable, keyed by its axis name, each with the
        categorical axes process, region and syst.
    - `fill_cutflows()` writes a nested `output["cutflow"]` structure with both
        weighted and unweighted cutflow hists per category.
    - `output["truth_diagnostics"]` counts, per truth slot, the events in which
        the slot stayed unfilled (simulation only).
"""

import logging
import os

import awkward as ak
import numpy as np
from coffea import processor
from coffea.analysis_tools import PackedSelection, Weights
from coffea.nanoevents.methods import vector

from hhcoffea.analysis_config import (
    CATEGORIES,
    CUTS,
    ELECTRON_WORKING_POINTS,
    HIGGS_MASS,
    LUMI_UNC,
    LUMIS,
    MUON_WORKING_POINTS,
    SEL_LEAD_LEPTON_PT,
    SEL_LEADING_PAIR_ELEL,
    SEL_LEADING_PAIR_ELMU,
    SEL_LEADING_PAIR_MUEL,
    SEL_LEADING_PAIR_MUMU,
    SEL_MIN_TWO_BJETS,
    SEL_MIN_TWO_JETS,
    SEL_OPPOSITE_SIGN,
    SEL_SUBLEAD_LEPTON_PT,
    SEL_TWO_LEPTONS,
)
from hhcoffea.composites import build_dijets, build_dilepton_dijets, build_dileptons
from hhcoffea.event_tree import write_event_tree
from hhcoffea.gen_truth import ROLE_SLOTS, log_truth_table, resolve_truth, unfilled_role_counts
from hhcoffea.histograms import _booking_specs, create_hist, fill_cutflows, fill_histograms
from hhcoffea.kinematics import met_p4
from hhcoffea.matching import truth_distances
from hhcoffea.objects import select_jets, select_leptons, working_point

ak.behavior.update(vector.behavior)
logger = logging.getLogger(__name__)

# Warn-once cache (per worker process) to avoid log spam.
_WARN_ONCE: set[str] = set()


class HHAnalysis(processor.ProcessorABC):
    """Main Coffea processor for the HH analysis.

    Expected `events.metadata` keys (typical):
      - `era`: campaign key (e.g. RunIISummer20UL18)
      - `datatype`: "mc" or "data"
      - `physics_group`: high-level sample name (e.g. TTbar, DoubleMuon, Signal)
      - `sample`: dataset identifier string
      - `xsec`, `genEventSumw` (MC only)

    Parameters
    - `enabled_systs`: list of enabled systematic families. Currently supported:
      - `lumi`: add `LumiUp`/`LumiDown` variations as histogram `syst` axis values.
    - `cuts`: overrides for entries of ``analysis_config.CUTS``.
    - `tree_dir`: if set, each chunk's event record is written as a ROOT tree
      below this directory.
    - `debug`: dump the resolved truth slots of the first events of each chunk
      at DEBUG level (worker loggers included).
    """
    def __init__(self, enabled_systs=None, cuts=None, tree_dir=None, debug=False):
        enabled = enabled_systs or []
        self._enabled_systs = {str(s).strip().lower() for s in enabled if str(s).strip()}
        self._cuts = {**CUTS, **(cuts or {})}
        self._tree_dir = tree_dir
        self._debug = debug

        # Fail at construction, not on the first chunk of a distributed job.
        working_point(ELECTRON_WORKING_POINTS, self._cuts["electron_wp"])
        working_point(MUON_WORKING_POINTS, self._cuts["muon_wp"])

        booking = _booking_specs()
        self.make_output = lambda: {
            name: create_hist(name, bins, label)
            for name, (bins, label) in booking.items()
        }

    def build_event_record(self, events, is_mc, with_truth=None):
        """Compute every per-event derived quantity into one record array.

        Fields:
          - ``leptons``, ``jets``, ``bjets``, ``met``: selected objects
          - ``ll``, ``jj``, ``bb``, ``lljj``, ``llbb``: composites (see ``composites``)
          - ``h_dijet_idx``, ``h_dibjet_idx``: best pair index or -1
          - ``nJets``, ``nBJets``, ``nMuons``, ``nElectrons``, ``nLeptons``
          - simulation only (``with_truth``, default ``is_mc``): ``gen_i<slot>``,
            ``gen_iG1/G2/Glu1/Glu2``,
            ``gen_<composite>`` four-vectors and ``gen_deltaR_<obj>_<leg>`` lists
        """
        leptons, _lepton_masks, electron_idx, muon_idx = select_leptons(events, self._cuts)
        jets, bjets, _jet_masks = select_jets(events, self._cuts)
        met = met_p4(events.MET)

        reference_mass = HIGGS_MASS["mc" if is_mc else "data"]
        ll = build_dileptons(leptons, met)
        jj, h_dijet_idx = build_dijets(jets, met, reference_mass)
        bb, h_dibjet_idx = build_dijets(bjets, met, reference_mass)

        fields = {
            "leptons": leptons,
            "jets": jets,
            "bjets": bjets,
            "met": met,
            "ll": ll,
            "jj": jj,
            "bb": bb,
            "lljj": build_dilepton_dijets(ll, jj, met),
            "llbb": build_dilepton_dijets(ll, bb, met),
            "h_dijet_idx": h_dijet_idx,
            "h_dibjet_idx": h_dibjet_idx,
            "nJets": ak.num(jets, axis=1),
            "nBJets": ak.num(bjets, axis=1),
            "nMuons": ak.num(muon_idx, axis=1),
            "nElectrons": ak.num(electron_idx, axis=1),
            "nLeptons": ak.num(leptons, axis=1),
        }

        if with_truth is None:
            with_truth = is_mc
        if with_truth:
            fields.update(self.build_truth_fields(events))

        return ak.zip(fields, depth_limit=1)

    def build_truth_fields(self, events):
        """``gen_*`` fields: slot indices, FSR lists, truth four-vectors and ΔR lists."""
        genparts = events.GenPart
        roles, radiation, p4s = resolve_truth(genparts)
        if self._debug:
            log_truth_table(genparts, roles, radiation)

        fields = {f"gen_i{field}": roles[field] for field in ak.fields(roles) if not field.startswith("fsr_")}
        fields.update({f"gen_i{name}": indices for name, indices in radiation.items()})
        fields.update({f"gen_{name}": p4 for name, p4 in p4s.items()})
        fields.update(truth_distances(events, p4s))
        return fields

    def category_selections(self, record):
        """
        Build PackedSelection for the dilepton categories.

        Category criteria:
          - at least 2 selected leptons
          - flavour of the leading dilepton (ll[0], the two highest-pT leptons)
            decides mumu / elel / elmu / muel, ordered by pT
          - leading / subleading lepton pT thresholds

        Extra cutflow steps: opposite charge, >= 2 jets, >= 2 b-jets.
        """
        selections = PackedSelection()

        lead_pair = ak.pad_none(record.ll, 1, axis=1)[:, 0]
        lpad = ak.pad_none(record.leptons, 2, axis=1)
        l1, l2 = lpad[:, 0], lpad[:, 1]

        selections.add(SEL_TWO_LEPTONS,       ak.to_numpy(record.nLeptons >= 2))
        selections.add(SEL_LEADING_PAIR_MUMU, ak.to_numpy(ak.fill_none(lead_pair.isMuMu, False)))
        selections.add(SEL_LEADING_PAIR_ELEL, ak.to_numpy(ak.fill_none(lead_pair.isElEl, False)))
        selections.add(SEL_LEADING_PAIR_ELMU, ak.to_numpy(ak.fill_none(lead_pair.isElMu, False)))
        selections.add(SEL_LEADING_PAIR_MUEL, ak.to_numpy(ak.fill_none(lead_pair.isMuEl, False)))
        selections.add(SEL_LEAD_LEPTON_PT,    ak.to_numpy(ak.fill_none(l1.pt > self._cuts["lead_lepton_pt_min"], False)))
        selections.add(SEL_SUBLEAD_LEPTON_PT, ak.to_numpy(ak.fill_none(l2.pt > self._cuts["sublead_lepton_pt_min"], False)))
        selections.add(SEL_OPPOSITE_SIGN,     ak.to_numpy(ak.fill_none(lead_pair.charge < 0, False)))
        selections.add(SEL_MIN_TWO_JETS,      ak.to_numpy(record.nJets >= 2))
        selections.add(SEL_MIN_TWO_BJETS,     ak.to_numpy(record.nBJets >= 2))

        return selections

    def build_event_weights(self, events, metadata, is_mc):
        """
        Minimal weights:
          - MC: genWeight * xsec * lumi / genEventSumw + lumi Up/Down
          - Data: unit weights
        """
        n = len(events)
        weights = Weights(n)

        if is_mc:
            lumi = float(LUMIS[metadata.get("era")])
            xsec = float(metadata.get("xsec"))

            # Signed genEventSumw (do NOT abs) for NLO samples.
            sumw = float(metadata.get("genEventSumw"))
            if sumw == 0.0:
                raise ZeroDivisionError(
                    f"genEventSumw is zero for dataset '{metadata.get('sample')}'."
                )
            weights.add("event_weight", np.asarray(events.genWeight) * xsec * lumi * 1000.0 / sumw)

            syst_weights = {"Nominal": weights.weight()}

            if "lumi" in self._enabled_systs:
                era_key = metadata.get("era")
                delta = LUMI_UNC.get(era_key)
                if delta is None:
                    logger.warning(
                        f"No luminosity uncertainty defined for era '{era_key}'. "
                        "Skipping lumiUp/lumiDown systematics."
                    )
                else:
                    ones = np.ones(n, dtype=np.float32)
                    weights.add(
                        "lumi",
                        ones,
                        weightUp=ones * (1.0 + float(delta)),
                        weightDown=ones * (1.0 - float(delta)),
                    )
                    syst_weights["Nominal"] = weights.weight()
                    syst_weights["LumiUp"] = weights.weight(modifier="lumiUp")
                    syst_weights["LumiDown"] = weights.weight(modifier="lumiDown")

        else:  # is_data
            weights.add("data", np.ones(n, dtype=np.float32))
            syst_weights = {
                "Nominal": weights.weight(),
            }

        return weights, syst_weights

    def _write_tree(self, record, metadata):
        dataset = metadata.get("sample", "unknown")
        stem = os.path.splitext(os.path.basename(str(metadata.get("filename", "chunk"))))[0]
        dest = os.path.join(
            self._tree_dir,
            dataset,
            f"{stem}_{metadata.get('entrystart', 0)}_{metadata.get('entrystop', len(record))}.root",
        )
        write_event_tree(record, dest)

    def process(self, events):
        """Run analysis for one NanoEvents chunk and return a dataset-nested output dict."""
        if self._debug:
            logging.getLogger("hhcoffea").setLevel(logging.DEBUG)

        output = self.make_output()
        metadata = events.metadata

        process_name = metadata.get("physics_group")
        dataset = metadata.get("sample")

        datatype = (metadata.get("datatype") or "").strip().lower()
        is_mc = datatype == "mc"

        if is_mc and not hasattr(events, "GenPart"):
            key = f"missing_genpart::{dataset}"
            if key not in _WARN_ONCE:
                _WARN_ONCE.add(key)
                logger.warning(f"Dataset '{dataset}' is MC but has no GenPart collection; skipping truth.")
            is_mc_truth = False
        else:
            is_mc_truth = is_mc

        record = self.build_event_record(events, is_mc, with_truth=is_mc_truth)
        selections = self.category_selections(record)
        weights, syst_weights = self.build_event_weights(events, metadata, is_mc)

        for category, flavour in CATEGORIES.items():
            cut = selections.all(SEL_TWO_LEPTONS, flavour, SEL_LEAD_LEPTON_PT, SEL_SUBLEAD_LEPTON_PT)
            fill_histograms(output, category, cut, process_name, record, syst_weights, is_mc=is_mc_truth)

        fill_cutflows(output, selections, weights)

        if is_mc_truth:
            roles = {slot: record[f"gen_i{slot}"] for slot in ROLE_SLOTS}
            output["truth_diagnostics"] = {
                "events": len(record),
                "unfilled": unfilled_role_counts(roles),
            }

        if self._tree_dir:
            self._write_tree(record, metadata)

        return {dataset: {**output}}

    def postprocess(self, accumulator):
        return accumulator
