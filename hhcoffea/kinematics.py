"""Four-vector helpers shared by the composite builder and the truth resolver.

All helpers operate element-wise on awkward arrays (flat or jagged) carrying the
coffea vector behaviors.  Angular conventions follow ROOT's ``VectorUtil``:

  - ``delta_phi(a, b)`` is the signed ``b.phi - a.phi`` wrapped into (-pi, pi].
  - ``delta_r(a, b)`` is symmetric.
"""

import awkward as ak
import numpy as np
from coffea.nanoevents.methods import vector

from hhcoffea.analysis_config import BEAM_ENERGY

ak.behavior.update(vector.behavior)


def make_p4(obj, **extra_fields):
    """Zip ``pt/eta/phi/mass`` of ``obj`` (plus ``extra_fields``) into PtEtaPhiM vectors."""
    fields = {"pt": obj.pt, "eta": obj.eta, "phi": obj.phi, "mass": obj.mass}
    fields.update(extra_fields)
    return ak.zip(fields, with_name="PtEtaPhiMLorentzVector")


def met_p4(met):
    """Missing transverse energy as a massless vector in the transverse plane."""
    zeros = ak.zeros_like(met.pt)
    return ak.zip(
        {"pt": met.pt, "eta": zeros, "phi": met.phi, "mass": zeros},
        with_name="PtEtaPhiMLorentzVector",
    )


def to_cartesian(p4):
    """Convert any Lorentz vector array to an (x, y, z, t) ``LorentzVector``."""
    return ak.zip(
        {"x": p4.x, "y": p4.y, "z": p4.z, "t": p4.t},
        with_name="LorentzVector",
    )


def sum_p4(vectors, axis=1):
    """Sum jagged Lorentz vectors along ``axis`` (empty lists sum to zero)."""
    return ak.zip(
        {
            "x": ak.sum(vectors.x, axis=axis),
            "y": ak.sum(vectors.y, axis=axis),
            "z": ak.sum(vectors.z, axis=axis),
            "t": ak.sum(vectors.t, axis=axis),
        },
        with_name="LorentzVector",
    )


def delta_phi(a, b):
    dphi = b.phi - a.phi
    dphi = ak.where(dphi > np.pi, dphi - 2 * np.pi, dphi)
    dphi = ak.where(dphi <= -np.pi, dphi + 2 * np.pi, dphi)
    return dphi


def delta_r(a, b):
    with np.errstate(invalid="ignore", divide="ignore"):
        deta = a.eta - b.eta
        return np.sqrt(deta ** 2 + delta_phi(a, b) ** 2)


def transverse_mass(p4, met):
    """sqrt(2 pT(p4) MET (1 - cos dphi)) with dphi measured from ``p4`` to ``met``."""
    dphi = delta_phi(p4, met)
    return np.sqrt(2 * p4.pt * met.pt * (1 - np.cos(dphi)))


def projected_met(min_dphi, met_pt):
    """MET component perpendicular to the nearest object.

    Capped: when the minimum separation reaches pi the raw MET is returned, not
    MET * sin(pi).
    """
    return ak.where(min_dphi >= np.pi, met_pt, met_pt * np.sin(min_dphi))


def _beam(like, pz, energy):
    zeros = ak.zeros_like(like.t)
    return ak.zip(
        {"x": zeros, "y": zeros, "z": zeros + pz, "t": zeros + energy},
        with_name="LorentzVector",
    )


def cos_theta_star_cs(h1, h2, ebeam=BEAM_ENERGY):
    """Collins-Soper cos(theta*) of ``h1`` in the ``h1 + h2`` rest frame.

    Both beams and ``h1`` are boosted into the rest frame of the pair; the CS
    axis bisects the boosted beam directions (p1_hat - p2_hat) and the result is
    the cosine of its angle with the boosted ``h1`` momentum.
    """
    with np.errstate(invalid="ignore", divide="ignore"):
        h1 = to_cartesian(h1)
        rest = (h1 + to_cartesian(h2)).boostvec

        p1 = _beam(h1, ebeam, ebeam).boost(-rest)
        p2 = _beam(h1, -ebeam, ebeam).boost(-rest)
        h1_rest = h1.boost(-rest)

        cs_axis = p1.pvec.unit() - p2.pvec.unit()
        return cs_axis.unit().dot(h1_rest.pvec.unit())
