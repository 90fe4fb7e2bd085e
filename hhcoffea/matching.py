"""Truth-to-reconstruction angular distances (MC only).

For every object of the *unselected* Jet/Electron/Muon collections the
distance to the truth legs is computed; nothing is assigned or ranked.  Each
reconstructed object is represented by its generator-matched four-momentum
(``genJetIdx`` into ``GenJet`` for jets, ``genPartIdx`` into ``GenPart`` for
leptons), falling back to its own four-momentum when it has no match.
"""

import awkward as ak
import numpy as np

from hhcoffea.kinematics import delta_r, make_p4

# collection attribute -> (branch tag, index field, generator collection, truth legs)
MATCH_TARGETS = {
    "Jet":      ("jet",      "genJetIdx",  "GenJet",  ("B1", "B2", "B1FSR", "B2FSR")),
    "Electron": ("electron", "genPartIdx", "GenPart", ("L1", "L2", "L1FSR", "L2FSR")),
    "Muon":     ("muon",     "genPartIdx", "GenPart", ("L1", "L2", "L1FSR", "L2FSR")),
}


def _has(obj, name):
    return name in getattr(obj, "fields", [])


def gen_matched_p4(reco, gen, idx_field):
    """Generator-matched PtEtaPhiM vectors for ``reco``, reco kinematics where unmatched."""
    reco_p4 = make_p4(reco)
    if gen is None or not _has(reco, idx_field):
        return reco_p4

    idx = reco[idx_field]
    valid = (idx >= 0) & (idx < ak.num(gen, axis=1))
    matched = gen[ak.mask(idx, valid)]

    def pick(field):
        return ak.fill_none(ak.where(valid, matched[field], reco_p4[field]), np.nan)

    return ak.zip(
        {f: pick(f) for f in ("pt", "eta", "phi", "mass")},
        with_name="PtEtaPhiMLorentzVector",
    )


def truth_distances(events, truth_p4s):
    """``gen_deltaR_<tag>_<leg>`` jagged lists, one entry per reconstructed object.

    Distances to an unfilled (zero) leg are NaN: the pseudorapidity of a zero
    vector is undefined here, whereas ROOT's ``Eta()`` and ``Phi()`` report 0 for
    it and so give a finite distance to (0, 0). A NaN entry therefore means "no
    such truth leg in this event", not a computation error; select on
    ``gen_i<leg> != -1`` before using the distance.
    """
    out = {}
    for collection, (tag, idx_field, gen_name, legs) in MATCH_TARGETS.items():
        reco = getattr(events, collection)
        gen = getattr(events, gen_name) if _has(events, gen_name) else None
        p4 = gen_matched_p4(reco, gen, idx_field)
        for leg in legs:
            out[f"gen_deltaR_{tag}_{leg}"] = delta_r(p4, truth_p4s[leg])
    return out
