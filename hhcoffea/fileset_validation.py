from __future__ import annotations

import logging
from collections.abc import Mapping
from numbers import Real

logger = logging.getLogger(__name__)

REQUIRED_METADATA = ("sample", "datatype")
REQUIRED_MC_METADATA = ("xsec", "genEventSumw")
DATATYPES = ("mc", "data")


def _short_list(items: list[str], *, limit: int = 8) -> str:
    if not items:
        return "(none)"
    head = ", ".join(items[:limit])
    return head if len(items) <= limit else f"{head}, ... (+{len(items) - limit} more)"


def _check_dataset(name: str, entry: object, where: str) -> None:
    """Raise ``ValueError`` if one fileset entry cannot be handed to the processor."""
    label = f"Fileset['{name}']"
    if not isinstance(entry, Mapping):
        raise ValueError(f"{label} must be an object{where}.")

    files = entry.get("files")
    if not isinstance(files, Mapping):
        raise ValueError(f"{label}['files'] must map file paths to tree names{where}.")
    if not files:
        raise ValueError(f"{label}['files'] lists no input files{where}.")

    metadata = entry.get("metadata")
    if not isinstance(metadata, Mapping):
        raise ValueError(f"{label}['metadata'] must be an object{where}.")

    absent = [key for key in REQUIRED_METADATA if key not in metadata]
    if absent:
        raise ValueError(f"{label}['metadata'] has no {', '.join(absent)}{where}.")

    datatype = str(metadata["datatype"]).strip().lower()
    if datatype not in DATATYPES:
        raise ValueError(
            f"{label}['metadata']['datatype'] must be 'mc' or 'data', got {metadata['datatype']!r}{where}."
        )
    if datatype != "mc":
        return

    absent = [key for key in REQUIRED_MC_METADATA if key not in metadata]
    if absent:
        raise ValueError(f"{label}['metadata'] lacks MC normalization keys {absent}{where}.")
    for key in REQUIRED_MC_METADATA:
        if not isinstance(metadata[key], Real) or isinstance(metadata[key], bool):
            raise ValueError(f"{label}['metadata']['{key}'] must be a number, got {metadata[key]!r}{where}.")


def validate_fileset_schema(fileset: object, *, filepath: str | None = None) -> None:
    """Check the fileset layout consumed by `bin/run_analysis.py`.

    Layout::

      {dataset: {"files": {path: "Events", ...}, "metadata": {...}}, ...}

    Every dataset carries ``sample`` and ``datatype`` ("mc" or "data");
    simulated ones also carry numeric ``xsec`` and ``genEventSumw``.
    """
    where = f" ({filepath})" if filepath else ""

    if not isinstance(fileset, Mapping):
        raise ValueError(f"Fileset must be a JSON object (dict-like){where}.")
    if not fileset:
        raise ValueError(f"Fileset is empty{where}.")

    for name, entry in fileset.items():
        if not isinstance(name, str):
            raise ValueError(f"Fileset dataset names must be strings, got {name!r}{where}.")
        _check_dataset(name, entry, where)

    logger.debug("Fileset%s passed schema checks (%d datasets)", where, len(fileset))


def validate_selection(
    filtered_fileset: Mapping,
    *,
    desired_process: str,
    preprocessed_fileset: Mapping | None = None,
) -> None:
    """Fail fast if filtering produced no datasets, listing the groups on offer."""
    if filtered_fileset:
        return

    groups = {
        (entry.get("metadata") or {}).get("physics_group")
        for entry in (preprocessed_fileset or {}).values()
    }
    groups = sorted(g for g in groups if isinstance(g, str))

    raise ValueError(
        f"Selection matched 0 datasets for sample '{desired_process}'. "
        f"Available physics_group values (subset): {_short_list(groups)}"
    )
