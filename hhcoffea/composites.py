"""Combinatorial composite objects: dileptons, dijets, b-dijets, lljj / llbb.

Every builder enumerates unordered pairs with ``ak.combinations`` (i < j in the
input order) and products with ``ak.cartesian`` (first argument major).  The
enumeration order is part of the output contract:

  - combination 0 always pairs constituents 0 and 1 (the two leading objects
    when the input is pT-ordered);
  - the best-dijet index returned by :func:`build_dijets` points into that
    order, so reordering constituents changes the selected index.

Builders are pure: they only read their inputs and return new arrays.
"""

import awkward as ak
import numpy as np

from hhcoffea.analysis_config import DIJET_MASS_DIFF_START, NOT_FOUND
from hhcoffea.kinematics import (
    cos_theta_star_cs,
    delta_phi,
    delta_r,
    projected_met,
    transverse_mass,
)


def closest_mass_index(p4, reference_mass, start=DIJET_MASS_DIFF_START):
    """Index of the first pair whose mass is closest to ``reference_mass``.

    A pair is only eligible when ``|m - reference_mass| < start``; among eligible
    pairs the first strict minimum wins, later equal distances do not override.
    Events without an eligible pair get ``NOT_FOUND``.
    """
    diff = np.abs(p4.mass - reference_mass)
    eligible = ak.fill_none(diff < start, False)
    masked = ak.where(eligible, diff, np.inf)
    best = ak.argmin(masked, axis=1)
    return ak.where(ak.any(eligible, axis=1), ak.fill_none(best, NOT_FOUND), NOT_FOUND)


def build_dileptons(leptons, met):
    """All lepton pairs (i < j) with their angular and missing-energy observables.

    Flavour flags are positional: ``isElMu`` means the higher-pT lepton is the
    electron.  ``projectedMet`` is the MET component perpendicular to the lepton
    nearest in phi, capped at the raw MET when that separation reaches pi.
    """
    pairs = ak.combinations(leptons, 2, fields=["l1", "l2"])
    idx = ak.argcombinations(leptons, 2, fields=["first", "second"])
    l1, l2 = pairs.l1, pairs.l2

    ll = l1 + l2
    dphi_met = delta_phi(ll, met)
    dphi_l1_met = delta_phi(l1, met)
    dphi_l2_met = delta_phi(l2, met)
    min_dphi = np.minimum(dphi_l1_met, dphi_l2_met)
    max_dphi = np.maximum(dphi_l1_met, dphi_l2_met)
    llmet = ll + met

    return ak.zip(
        {
            "p4": ll,
            "l1": l1,
            "l2": l2,
            "idx": idx,
            "charge": l1.charge * l2.charge,
            "isMuMu": l1.isMu & l2.isMu,
            "isElEl": l1.isEl & l2.isEl,
            "isElMu": l1.isEl & l2.isMu,
            "isMuEl": l1.isMu & l2.isEl,
            "DR": delta_r(l1, l2),
            "DPhi": delta_phi(l1, l2),
            "DPhi_met": dphi_met,
            "met_p4": llmet,
            "MT": llmet.mass,
            "MT_formula": transverse_mass(ll, met),
            "minDPhi_lmet": min_dphi,
            "maxDPhi_lmet": max_dphi,
            "projectedMet": projected_met(min_dphi, met.pt),
        },
        depth_limit=2,
    )


def build_dijets(jets, met, reference_mass):
    """All jet pairs (i < j) plus the per-event index of the pair closest to mH.

    Do not change the enumeration: index 0 must be made of the leading jets.
    Used for both the dijet and the b-dijet collections.

    Returns ``(dijets, best_idx)``.
    """
    pairs = ak.combinations(jets, 2, fields=["j1", "j2"])
    idx = ak.argcombinations(jets, 2, fields=["first", "second"])
    j1, j2 = pairs.j1, pairs.j2

    jj = j1 + j2
    dphi_j1_met = delta_phi(j1, met)
    dphi_j2_met = delta_phi(j2, met)

    dijets = ak.zip(
        {
            "p4": jj,
            "j1": j1,
            "j2": j2,
            "idx": idx,
            "DR": delta_r(j1, j2),
            "DPhi": delta_phi(j1, j2),
            "DPhi_met": delta_phi(jj, met),
            "minDPhi_jmet": np.minimum(dphi_j1_met, dphi_j2_met),
            "maxDPhi_jmet": np.maximum(dphi_j1_met, dphi_j2_met),
        },
        depth_limit=2,
    )
    return dijets, closest_mass_index(jj, reference_mass)


def build_dilepton_dijets(dileptons, dijets, met):
    """Four-body (ll, jj) systems, with and without MET, dilepton-major order.

    ``minDR_lj`` / ``maxDR_lj`` run over the four lepton-jet pairings of the
    constituents.  The MET variants attach MET to the dilepton side for the
    azimuthal separation and the Collins-Soper angle.
    """
    pairs = ak.cartesian({"ll": dileptons, "jj": dijets}, axis=1)
    idx = ak.argcartesian({"first": dileptons, "second": dijets}, axis=1)
    ll, jj = pairs.ll.p4, pairs.jj.p4

    dr_j1l1 = delta_r(pairs.jj.j1, pairs.ll.l1)
    dr_j1l2 = delta_r(pairs.jj.j1, pairs.ll.l2)
    dr_j2l1 = delta_r(pairs.jj.j2, pairs.ll.l1)
    dr_j2l2 = delta_r(pairs.jj.j2, pairs.ll.l2)

    lljj = ll + jj
    llmet = ll + met
    lljjmet = lljj + met

    return ak.zip(
        {
            "p4": lljj,
            "idx": idx,
            "DR": delta_r(ll, jj),
            "DPhi": delta_phi(ll, jj),
            "minDR_lj": np.minimum(np.minimum(dr_j1l1, dr_j1l2), np.minimum(dr_j2l1, dr_j2l2)),
            "maxDR_lj": np.maximum(np.maximum(dr_j1l1, dr_j1l2), np.maximum(dr_j2l1, dr_j2l2)),
            "cosThetaStar_CS": cos_theta_star_cs(ll, jj),
            "met_p4": lljjmet,
            "met_DR": delta_r(lljj, met),
            "met_DPhi": delta_phi(llmet, jj),
            "met_cosThetaStar_CS": cos_theta_star_cs(llmet, jj),
        },
        depth_limit=2,
    )
