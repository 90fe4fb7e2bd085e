import json
import logging
from pathlib import Path

# era -> where its output lands under rootfiles/
ERA_MAPPING = {
    "Run2016": {"run": "RunII", "year": "2016"},
    "RunIISummer20UL16APV": {"run": "RunII", "year": "2016"},
    "RunIISummer20UL16": {"run": "RunII", "year": "2016"},
    "RunIISummer20UL17": {"run": "RunII", "year": "2017"},
    "RunIISummer20UL18": {"run": "RunII", "year": "2018"},
}


def get_era_details(era):
    """Return ``(run, year, era)`` for a supported era string."""
    try:
        details = ERA_MAPPING[era]
    except KeyError:
        raise ValueError(f"Unsupported era: {era}. Valid eras: {sorted(ERA_MAPPING)}") from None
    return details["run"], details["year"], era


def load_json(filepath):
    path = Path(filepath)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise RuntimeError(f"Failed to read JSON file {path}: {e}") from e
    logging.info(f"Successfully loaded JSON file: {path}")
    return data
