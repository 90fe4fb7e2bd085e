"""Reconstructed object selection (leptons, jets, b-jets, MET).

The selected collections are plain PtEtaPhiM Lorentz-vector records carrying
the bookkeeping fields the composite builder needs:

  - leptons: ``charge``, ``idx`` (index into Electron/Muon), ``isEl``, ``isMu``
  - jets / b-jets: ``idx`` (index into Jet), ``btag``
"""

import logging

import awkward as ak
import numpy as np

from hhcoffea.analysis_config import CUTS, ELECTRON_WORKING_POINTS, MUON_WORKING_POINTS
from hhcoffea.kinematics import make_p4

logger = logging.getLogger(__name__)


def working_point(table, name):
    """Look up a working-point callable by name, failing loudly on typos."""
    try:
        wp = table[name]
    except KeyError:
        raise ValueError(
            f"Unknown working point '{name}'. Valid choices: {sorted(table)}"
        ) from None
    logger.debug("Using working point '%s'", name)
    return wp


def _flag_like(idx, value):
    return ak.values_astype(ak.full_like(idx, 1 if value else 0), np.bool_)


def select_leptons(events, cuts=CUTS):
    """Build the merged electron+muon collection sorted by descending pT.

    Returns
    - ``leptons``: PtEtaPhiM records with ``charge/idx/isEl/isMu``
    - ``masks``: per-object boolean masks (``ele_pteta``, ``ele_id``, ``ele_iso``,
      and the muon equivalents) for cutflows
    - ``electron_idx`` / ``muon_idx``: indices of the selected objects in the
      input collections, in input order
    """
    ele = events.Electron
    mu = events.Muon

    ele_pteta = (ele.pt > cuts["electron_pt_min"]) & (np.abs(ele.eta) < cuts["electron_eta_max"])
    mu_pteta  = (mu.pt > cuts["muon_pt_min"])      & (np.abs(mu.eta) < cuts["muon_eta_max"])

    ele_id = working_point(ELECTRON_WORKING_POINTS, cuts["electron_wp"])(ele)
    mu_id  = working_point(MUON_WORKING_POINTS, cuts["muon_wp"])(mu)

    ele_iso = ele.pfRelIso03_all < cuts["electron_iso_max"]
    mu_iso  = mu.pfRelIso04_all < cuts["muon_iso_max"]

    ele_mask = ele_id & ele_iso & ele_pteta
    mu_mask  = mu_id & mu_iso & mu_pteta

    electron_idx = ak.local_index(ele, axis=1)[ele_mask]
    muon_idx     = ak.local_index(mu, axis=1)[mu_mask]

    electrons = make_p4(
        ele[ele_mask],
        charge=ele.charge[ele_mask],
        idx=electron_idx,
        isEl=_flag_like(electron_idx, True),
        isMu=_flag_like(electron_idx, False),
    )
    muons = make_p4(
        mu[mu_mask],
        charge=mu.charge[mu_mask],
        idx=muon_idx,
        isEl=_flag_like(muon_idx, False),
        isMu=_flag_like(muon_idx, True),
    )

    leptons = ak.with_name(ak.concatenate([electrons, muons], axis=1), "PtEtaPhiMLorentzVector")
    leptons = leptons[ak.argsort(leptons.pt, axis=1, ascending=False, stable=True)]

    masks = {
        "ele_pteta": ele_pteta,
        "ele_id": ele_id,
        "ele_iso": ele_iso,
        "mu_pteta": mu_pteta,
        "mu_id": mu_id,
        "mu_iso": mu_iso,
    }

    return leptons, masks, electron_idx, muon_idx


def select_jets(events, cuts=CUTS):
    """Select jets on pT/eta and b-jets on top of them; input order is kept.

    Returns ``(jets, bjets, masks)``.
    """
    jet = events.Jet
    btag = jet[cuts["jet_btag_name"]]

    jet_pteta = (jet.pt > cuts["jet_pt_min"]) & (np.abs(jet.eta) < cuts["jet_eta_max"])
    jet_btag = btag > cuts["jet_btag_min"]

    jet_idx = ak.local_index(jet, axis=1)
    jets = make_p4(jet[jet_pteta], idx=jet_idx[jet_pteta], btag=btag[jet_pteta])

    bjet_mask = jet_pteta & jet_btag
    bjets = make_p4(jet[bjet_mask], idx=jet_idx[bjet_mask], btag=btag[bjet_mask])

    masks = {
        "jet_pteta": jet_pteta,
        "jet_btag": jet_btag,
    }

    return jets, bjets, masks
