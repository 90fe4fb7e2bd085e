from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path

from hhcoffea.era_utils import ERA_MAPPING, load_json
from hhcoffea.fileset_validation import validate_fileset_schema, validate_selection

logger = logging.getLogger(__name__)

# Selecting this sample keeps every dataset of the fileset.
ALL_SAMPLES = "all"


def list_eras() -> list[str]:
    """Era choices for the CLI, in ERA_MAPPING order."""
    return list(ERA_MAPPING)


def _labels(entry: Mapping) -> tuple:
    metadata = entry.get("metadata") or {}
    return metadata.get("physics_group"), metadata.get("sample")


def filter_by_process(fileset: Mapping, desired_process: str | None) -> dict:
    """Keep datasets whose ``physics_group`` (or ``sample``) equals ``desired_process``."""
    if desired_process in (None, ALL_SAMPLES):
        return dict(fileset)
    return {name: entry for name, entry in fileset.items() if desired_process in _labels(entry)}


def load_and_select_fileset(
    *,
    filepath: Path,
    desired_process: str | None,
    maxfiles: int | None = None,
) -> dict:
    """Read, validate and filter a fileset JSON; optionally cap the files per dataset."""
    if not filepath.exists():
        raise FileNotFoundError(f"Fileset JSON not found: {filepath}. Check the path passed on the command line.")

    full_fileset = load_json(str(filepath))
    validate_fileset_schema(full_fileset, filepath=str(filepath))

    selected = filter_by_process(full_fileset, desired_process)
    validate_selection(
        selected,
        desired_process=desired_process or ALL_SAMPLES,
        preprocessed_fileset=full_fileset,
    )
    logger.info("Selected %d of %d datasets for '%s'", len(selected), len(full_fileset), desired_process or ALL_SAMPLES)

    if maxfiles is not None:
        from coffea.dataset_tools import max_files
        selected = max_files(selected, maxfiles)

    return selected
