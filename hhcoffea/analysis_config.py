"""Lightweight configuration for the Coffea HH → ℓℓbb analysis.

Keep this module dependency-free so it can be shipped to Dask workers cheaply.
"""

# Integrated luminosities (fb^-1)
LUMIS = {
    "Run2016": 35.922,
    "RunIISummer20UL16": 16.81,
    "RunIISummer20UL16APV": 19.52,
    "RunIISummer20UL17": 41.48,
    "RunIISummer20UL18": 59.83,
}

# Systematic uncertainties: integrated luminosity fractional uncertainty
LUMI_UNC = {
    "Run2016": 0.025,
    "RunIISummer20UL16": 0.012,
    "RunIISummer20UL16APV": 0.012,
    "RunIISummer20UL17": 0.023,
    "RunIISummer20UL18": 0.025,
}

# Reference Higgs mass used to pick the "best" (b-)dijet.  Data and simulation
# are calibrated against slightly different values.
HIGGS_MASS = {
    "data": 125.02,
    "mc": 125.0,
}

# Starting distance of the closest-to-mH scan; a pair must beat it strictly.
DIJET_MASS_DIFF_START = 14000.0

# Out-of-range marker for "no index" (best dijet, unfilled truth role).
NOT_FOUND = -1

# Proton beam energy (GeV) entering the Collins-Soper cos(theta*) definition.
BEAM_ENERGY = 6500.0

# --- Generator status flags ---------------------------------------------------
#
# Bit positions of the 15-bit GenStatusFlags mask:
#   0 isPrompt, 1 isDecayedLeptonHadron, 2 isTauDecayProduct,
#   3 isPromptTauDecayProduct, 4 isDirectTauDecayProduct,
#   5 isDirectPromptTauDecayProduct, 6 isDirectHadronDecayProduct,
#   7 isHardProcess, 8 fromHardProcess, 9 isHardProcessTauDecayProduct,
#   10 isDirectHardProcessTauDecayProduct, 11 fromHardProcessBeforeFSR,
#   12 isFirstCopy, 13 isLastCopy, 14 isLastCopyBeforeFSR
IS_HARD_PROCESS = 7
FROM_HARD_PROCESS = 8
IS_LAST_COPY = 13

PDGID_PHOTON = 22
PDGID_GLUON = 21

# Truth roles filled from last-copy, hard-process particles (by |pdgId|).
# Each role owns an ordered tuple of slots filled first-unfilled-wins.
TRUTH_ROLES = {
    "higgs":    ((25,),         ("H1", "H2")),
    "quark":    ((5,),          ("B1", "B2")),
    "lepton":   ((11, 13),      ("L1", "L2")),
    "neutrino": ((12, 14, 16),  ("Nu1", "Nu2")),
    "resonance": ((35, 39),     ("X",)),
    "boson":    ((23, 24),      ("V1", "V2")),
}

# Legs that may have radiated: leg -> (radiation pdgId, radiation list name).
FSR_LEGS = {
    "L1": (PDGID_PHOTON, "G1"),
    "L2": (PDGID_PHOTON, "G2"),
    "B1": (PDGID_GLUON, "Glu1"),
    "B2": (PDGID_GLUON, "Glu2"),
}

# --- Object working points ----------------------------------------------------
#
# Name -> callable(collection) returning a jagged boolean mask.
ELECTRON_WORKING_POINTS = {
    "veto":   lambda ele: ele.cutBased >= 1,
    "loose":  lambda ele: ele.cutBased >= 2,
    "medium": lambda ele: ele.cutBased >= 3,
    "tight":  lambda ele: ele.cutBased >= 4,
    "heep":   lambda ele: ele.cutBased_HEEP,
}

MUON_WORKING_POINTS = {
    "loose":  lambda mu: mu.looseId,
    "medium": lambda mu: mu.mediumId,
    "tight":  lambda mu: mu.tightId,
    "highPt": lambda mu: mu.highPtId == 2,
}

# --- Selection name constants (single source of truth for string keys) ---------
#
# Used for PackedSelection.add() names, category definitions, and cutflow bookkeeping.
SEL_TWO_LEPTONS = "two_leptons"
SEL_LEADING_PAIR_MUMU = "leading_pair_mumu"
SEL_LEADING_PAIR_ELEL = "leading_pair_elel"
SEL_LEADING_PAIR_ELMU = "leading_pair_elmu"
SEL_LEADING_PAIR_MUEL = "leading_pair_muel"
SEL_LEAD_LEPTON_PT = "lead_lepton_pt"
SEL_SUBLEAD_LEPTON_PT = "sublead_lepton_pt"
SEL_OPPOSITE_SIGN = "opposite_sign"
SEL_MIN_TWO_JETS = "min_two_jets"
SEL_MIN_TWO_BJETS = "min_two_bjets"

# Category name -> flavour selection of the leading dilepton.
CATEGORIES = {
    "mumu": SEL_LEADING_PAIR_MUMU,
    "elel": SEL_LEADING_PAIR_ELEL,
    "elmu": SEL_LEADING_PAIR_ELMU,
    "muel": SEL_LEADING_PAIR_MUEL,
}

# --- Physics thresholds (single source of truth for analysis cuts) -------------
CUTS = {
    "electron_pt_min": 20,
    "electron_eta_max": 2.5,
    "electron_iso_max": 0.0766,
    "electron_wp": "tight",
    "muon_pt_min": 20,
    "muon_eta_max": 2.4,
    "muon_iso_max": 0.15,
    "muon_wp": "tight",
    "jet_pt_min": 20,
    "jet_eta_max": 2.4,
    "jet_btag_name": "btagDeepFlavB",
    "jet_btag_min": 0.2783,
    "lead_lepton_pt_min": 20,
    "sublead_lepton_pt_min": 10,
}
