"""Generator-level reconstruction of the HH hard-process chain (MC only).

Three steps, all columnar over the pruned generator particles of a chunk:

  1. :func:`assign_roles` scans last-copy, from-hard-process particles in
     collection order and fills the truth slots (H1/H2, B1/B2, L1/L2, Nu1/Nu2,
     X, V1/V2) first-unfilled-wins.  The assignment is order dependent by
     construction: reordering particles changes which one is "first".
  2. :func:`recover_fsr` collects last-copy photons (gluons) sharing a direct
     mother index with a lepton (b-quark) leg that is from the hard process
     but not itself flagged as hard process.  Only direct mothers are compared,
     there is no ancestry walk.
  3. :func:`truth_composites` builds the legs and their running sums.  An
     unfilled slot contributes a zero four-vector instead of an absent one.

Mother indices are read from a jagged ``motherIdx`` field when present
(one list per particle), otherwise NanoAOD's ``genPartIdxMother`` is wrapped
into single-element lists with negative indices dropped.
"""

import logging
from functools import reduce

import awkward as ak
import numpy as np

from hhcoffea.analysis_config import (
    FROM_HARD_PROCESS,
    FSR_LEGS,
    IS_HARD_PROCESS,
    IS_LAST_COPY,
    NOT_FOUND,
    TRUTH_ROLES,
)
from hhcoffea.kinematics import make_p4, sum_p4, to_cartesian

logger = logging.getLogger(__name__)

ROLE_SLOTS = [slot for _, slots in TRUTH_ROLES.values() for slot in slots]

TRUTH_P4_NAMES = [
    "H1", "H2", "V1", "V2", "X",
    "B1", "B2", "L1", "L2", "Nu1", "Nu2",
    "LL", "BB", "NuNu",
    "L1FSR", "L2FSR", "B1FSR", "B2FSR", "BBFSR",
    "L1FSRNu", "L2FSRNu", "LLFSR", "LLNuNu", "LLFSRNuNu", "LLFSRNuNuBB",
]


def has_status_bit(flags, bit):
    return ((flags >> bit) & 1) == 1


def _isin(values, choices):
    return reduce(lambda acc, c: acc | (values == c), choices[1:], values == choices[0])


def _select_at(array, idx):
    """Per-event sublist holding ``array[idx]``, empty when ``idx`` is NOT_FOUND."""
    return array[ak.local_index(array, axis=1) == idx]


def mother_indices(genparts):
    """Jagged ``[event][particle][mother]`` index lists."""
    if "motherIdx" in genparts.fields:
        return genparts.motherIdx
    wrapped = genparts.genPartIdxMother[:, :, np.newaxis]
    return wrapped[wrapped >= 0]


def _shares_mother(mothers, leg_mothers):
    """Per particle: does any of its mother indices equal any of ``leg_mothers``?"""
    per_particle = ak.cartesian({"own": mothers, "leg": leg_mothers[:, np.newaxis]}, axis=1)
    combos = ak.cartesian([per_particle.own, per_particle.leg], axis=2)
    return ak.any(combos["0"] == combos["1"], axis=2)


def assign_roles(genparts):
    """Fill the truth slots and the FSR-candidate flags.

    Returns a record per event with one integer field per slot (``NOT_FOUND``
    when unfilled) and ``fsr_L1``, ``fsr_L2``, ``fsr_B1``, ``fsr_B2`` booleans.
    """
    flags = genparts.statusFlags
    abs_id = np.abs(genparts.pdgId)
    local = ak.local_index(genparts, axis=1)

    candidate = has_status_bit(flags, IS_LAST_COPY) & has_status_bit(flags, FROM_HARD_PROCESS)
    radiating = has_status_bit(flags, FROM_HARD_PROCESS) & ~has_status_bit(flags, IS_HARD_PROCESS)

    fields = {}
    for pdg_ids, slots in TRUTH_ROLES.values():
        found = ak.pad_none(local[candidate & _isin(abs_id, pdg_ids)], len(slots), axis=1)
        for i, slot in enumerate(slots):
            fields[slot] = ak.fill_none(found[:, i], NOT_FOUND)

    for leg in FSR_LEGS:
        fields[f"fsr_{leg}"] = ak.any(_select_at(radiating, fields[leg]), axis=1)

    return ak.zip(fields, depth_limit=1)


def recover_fsr(genparts, roles):
    """Indices of FSR photons (``G1``, ``G2``) and gluons (``Glu1``, ``Glu2``).

    Each radiation particle appears at most once per leg, in collection order.
    """
    mothers = mother_indices(genparts)
    local = ak.local_index(genparts, axis=1)
    last_copy = has_status_bit(genparts.statusFlags, IS_LAST_COPY)

    radiation = {}
    for leg, (pdg_id, name) in FSR_LEGS.items():
        leg_mothers = ak.flatten(_select_at(mothers, roles[leg]), axis=2)
        selected = (
            (genparts.pdgId == pdg_id)
            & last_copy
            & _shares_mother(mothers, leg_mothers)
            & roles[f"fsr_{leg}"]
        )
        radiation[name] = local[selected]
    return radiation


def truth_composites(genparts, roles, radiation):
    """Truth legs and composites as a dict of ``LorentzVector`` arrays.

    The sums are running sums in a fixed order; e.g. ``LLFSRNuNuBB`` is
    ``(LLFSR + NuNu) + BBFSR`` and not a regrouping of the same legs.
    """
    p4 = to_cartesian(make_p4(genparts))

    def leg(slot):
        return sum_p4(_select_at(p4, roles[slot]))

    out = {slot: leg(slot) for slot in ROLE_SLOTS}

    out["LL"] = out["L1"] + out["L2"]
    out["BB"] = out["B1"] + out["B2"]
    out["NuNu"] = out["Nu1"] + out["Nu2"]

    out["L1FSR"] = out["L1"] + sum_p4(p4[radiation["G1"]])
    out["L2FSR"] = out["L2"] + sum_p4(p4[radiation["G2"]])
    out["B1FSR"] = out["B1"] + sum_p4(p4[radiation["Glu1"]])
    out["B2FSR"] = out["B2"] + sum_p4(p4[radiation["Glu2"]])
    out["BBFSR"] = out["B1FSR"] + out["B2FSR"]

    out["L1FSRNu"] = out["L1FSR"] + out["Nu1"]
    out["L2FSRNu"] = out["L2FSR"] + out["Nu2"]
    out["LLFSR"] = out["L1FSR"] + out["L2FSR"]
    out["LLNuNu"] = out["LL"] + out["NuNu"]
    out["LLFSRNuNu"] = out["LLFSR"] + out["NuNu"]
    out["LLFSRNuNuBB"] = out["LLFSRNuNu"] + out["BBFSR"]

    return {name: out[name] for name in TRUTH_P4_NAMES}


def unfilled_role_counts(roles):
    """Number of events in which each truth slot stayed unfilled."""
    return {slot: int(ak.sum(roles[slot] == NOT_FOUND)) for slot in ROLE_SLOTS}


def log_truth_table(genparts, roles, radiation, max_events=5):
    """Dump the resolved slots of the first ``max_events`` events at DEBUG level."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    n = min(len(genparts), max_events)
    for iev in range(n):
        parts = genparts[iev]
        for slot in ROLE_SLOTS:
            ip = int(roles[slot][iev])
            if ip == NOT_FOUND:
                logger.debug("event %d: %s unfilled", iev, slot)
                continue
            p = parts[ip]
            logger.debug(
                "event %d: i%s=%d pdgId=%d flags=%s (pt, eta, phi, mass)=(%.3f, %.3f, %.3f, %.3f)",
                iev, slot, ip, p.pdgId, format(int(p.statusFlags), "015b"),
                p.pt, p.eta, p.phi, p.mass,
            )
        for name, indices in radiation.items():
            logger.debug("event %d: i%s=%s", iev, name, ak.to_list(indices[iev]))


def resolve_truth(genparts):
    """Run the full resolver; returns ``(roles, radiation, p4s)``."""
    roles = assign_roles(genparts)
    radiation = recover_fsr(genparts, roles)
    p4s = truth_composites(genparts, roles, radiation)
    return roles, radiation, p4s
