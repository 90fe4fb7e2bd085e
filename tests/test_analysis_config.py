"""Tests for hhcoffea.analysis_config — config consistency."""

from hhcoffea.analysis_config import (
    CATEGORIES,
    CUTS,
    ELECTRON_WORKING_POINTS,
    FSR_LEGS,
    HIGGS_MASS,
    LUMI_UNC,
    LUMIS,
    MUON_WORKING_POINTS,
    TRUTH_ROLES,
)
from hhcoffea.era_utils import ERA_MAPPING


class TestConfigConsistency:
    def test_lumi_unc_covers_all_lumi_eras(self):
        for era in LUMIS:
            assert era in LUMI_UNC, f"LUMI_UNC missing era '{era}'"

    def test_every_era_has_a_luminosity(self):
        for era in ERA_MAPPING:
            assert era in LUMIS, f"LUMIS missing era '{era}'"

    def test_lepton_pt_thresholds_consistent(self):
        assert CUTS["sublead_lepton_pt_min"] <= CUTS["lead_lepton_pt_min"]

    def test_default_working_points_exist(self):
        assert CUTS["electron_wp"] in ELECTRON_WORKING_POINTS
        assert CUTS["muon_wp"] in MUON_WORKING_POINTS

    def test_higgs_mass_references(self):
        assert set(HIGGS_MASS) == {"data", "mc"}

    def test_four_categories(self):
        assert sorted(CATEGORIES) == ["elel", "elmu", "muel", "mumu"]


class TestTruthRoles:
    def test_slot_names_unique(self):
        slots = [slot for _, names in TRUTH_ROLES.values() for slot in names]
        assert len(slots) == len(set(slots))

    def test_fsr_legs_are_slots(self):
        slots = {slot for _, names in TRUTH_ROLES.values() for slot in names}
        assert set(FSR_LEGS) <= slots

    def test_fsr_radiation_species(self):
        assert FSR_LEGS["L1"][0] == 22
        assert FSR_LEGS["B2"][0] == 21
