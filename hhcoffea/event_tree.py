"""Write the per-event record as a flat ROOT TTree.

Nested record fields are flattened into ``<prefix>_<field>`` branches, e.g.
``ll.DR`` -> ``ll_DR`` and ``ll.idx.first`` -> ``ll_idx_first``; Lorentz
vectors become one branch per component.  Jagged fields keep their
per-event list structure.
"""

from __future__ import annotations

import logging
import os

import awkward as ak
import uproot

logger = logging.getLogger(__name__)

# Constituent records duplicated by the ``idx`` branches.
_SKIPPED_FIELDS = {"l1", "l2", "j1", "j2"}


def event_branches(record: ak.Array, prefix: str = "") -> dict[str, ak.Array]:
    """Flatten a (possibly nested) record array into a branch-name -> array dict."""
    branches: dict[str, ak.Array] = {}
    for field in ak.fields(record):
        if field in _SKIPPED_FIELDS:
            continue
        name = f"{prefix}_{field}" if prefix else field
        column = record[field]
        if ak.fields(column):
            branches.update(event_branches(column, name))
        else:
            branches[name] = ak.without_parameters(column)
    return branches


def _branch_type(array: ak.Array) -> str:
    return str(ak.type(array).content)


def write_event_tree(record: ak.Array, dest_path: str, tree_name: str = "Events") -> int:
    """Write ``record`` to ``dest_path``; returns the number of events written."""
    branches = event_branches(record)
    os.makedirs(os.path.dirname(dest_path) or ".", exist_ok=True)

    # TTree via mktree; plain dict assignment would produce an RNTuple.
    with uproot.recreate(dest_path) as fout:
        fout.mktree(tree_name, {name: _branch_type(arr) for name, arr in branches.items()})
        if len(record):
            fout[tree_name].extend(branches)

    logger.info("Wrote %d events (%d branches) to %s", len(record), len(branches), dest_path)
    return len(record)
