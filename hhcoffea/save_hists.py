import logging
from pathlib import Path
from typing import Dict, Iterator, Tuple

import uproot
from hist import Hist

from hhcoffea.era_utils import get_era_details

logger = logging.getLogger(__name__)

# Processor payload entries that are not per-observable histograms.
_NON_HIST_KEYS = ("cutflow", "truth_diagnostics")
NOMINAL = "Nominal"


def _normalize_syst_name(syst: str) -> str:
    """'LumiUp' -> 'lumiup'; keeps only alphanumerics so the name is a safe ROOT key."""
    return "".join(filter(str.isalnum, syst)).lower()


def _folder_and_hist_names(region: str, syst: str, hist_stem: str) -> Tuple[str, str]:
    tag = region if syst == NOMINAL else f"syst_{_normalize_syst_name(syst)}_{region}"
    return tag, f"{hist_stem}_{tag}"


def _merge_tree(dst, src):
    """Add ``src`` into ``dst`` where both are Hist or nested dicts of Hist."""
    if isinstance(src, Hist):
        if dst is None:
            return src.copy()
        if not isinstance(dst, Hist):
            raise TypeError("Cutflow entry is a histogram in one dataset and a mapping in another.")
        dst += src
        return dst
    if isinstance(src, dict):
        merged = dst if isinstance(dst, dict) else {}
        for key, child in src.items():
            merged[key] = _merge_tree(merged.get(key), child)
        return merged
    return dst


def _sum_cutflow_hists(my_hists, cutflow_key="cutflow"):
    """Sum the ``{category: {kind: Hist}}`` cutflow trees of every dataset."""
    summed = {}
    for payload in my_hists.values():
        tree = payload.get(cutflow_key)
        if isinstance(tree, dict):
            summed = _merge_tree(summed, tree)
    return summed


def _walk_hists(tree, prefix: str) -> Iterator[Tuple[str, Hist]]:
    if isinstance(tree, Hist):
        yield prefix, tree
    elif isinstance(tree, dict):
        for name, child in tree.items():
            yield from _walk_hists(child, f"{prefix}/{name}")


def _save_cutflows(root_file, cutflow_summed: Dict[str, dict], prefix: str):
    """Write each cutflow histogram once under ``prefix`` (a repeated key would add a ROOT ;2 cycle)."""
    written = set()
    for key, h in _walk_hists(cutflow_summed, prefix):
        if key in written:
            continue
        root_file[key] = h
        written.add(key)


def sum_truth_diagnostics(my_hists):
    """Add up the per-dataset unfilled-slot counters (simulation only)."""
    total = {"events": 0, "unfilled": {}}
    for payload in my_hists.values():
        diag = payload.get("truth_diagnostics")
        if not isinstance(diag, dict):
            continue
        total["events"] += int(diag.get("events", 0))
        for slot, count in diag.get("unfilled", {}).items():
            total["unfilled"][slot] = total["unfilled"].get(slot, 0) + int(count)
    return total


def log_truth_diagnostics(diagnostics):
    n_events = diagnostics["events"]
    if not n_events:
        return
    for slot, count in diagnostics["unfilled"].items():
        if count:
            logger.warning(
                "Truth slot %s unfilled in %d / %d events (zero four-vector used).",
                slot, count, n_events,
            )


def _categories(axis):
    return [axis.value(i) for i in range(axis.size)]


def split_hists_with_syst(summed_hists, *, sum_over_process=True):
    """Slice every histogram into ``{(region, syst, name): Hist}``.

    With ``sum_over_process`` the process axis is projected out, leaving only
    the observable axis in each slice.
    """
    out = {}
    for name, h in summed_hists.items():
        axis_names = [ax.name for ax in h.axes]
        if "region" not in axis_names or "syst" not in axis_names:
            logger.error("Histogram '%s' has no region/syst axes (axes: %s); not saved.", name, axis_names)
            continue

        for region in _categories(h.axes["region"]):
            for syst in _categories(h.axes["syst"]):
                sliced = h[{"region": region, "syst": syst}]
                if sum_over_process and "process" in [ax.name for ax in sliced.axes]:
                    sliced = sliced.project(*[ax.name for ax in sliced.axes if ax.name != "process"])
                out[(region, syst, name)] = sliced
    return out


def output_path(args) -> Path:
    """``HH_Plotter/rootfiles/<run>/<year>/<era>[/<dir>]/HHAnalyzer[_<name>]_<sample>.root``"""
    run, year, era = get_era_details(args.era)

    output_dir = Path("HH_Plotter", "rootfiles", run, year, era)
    if getattr(args, "dir", None):
        output_dir /= args.dir

    stem = "_".join(filter(None, ["HHAnalyzer", getattr(args, "name", None)]))
    sample = getattr(args, "sample", None) or "all"
    return output_dir / f"{stem}_{sample}.root"


def save_histograms(histograms, args):
    output_file = output_path(args)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    sliced = split_hists_with_syst(sum_hists(histograms), sum_over_process=True)

    with uproot.recreate(output_file) as root_file:
        for (region, syst, hist_name), h in sliced.items():
            folder, hname = _folder_and_hist_names(region, syst, hist_name)
            root_file[f"/{folder}/{hname}"] = h
        _save_cutflows(root_file, _sum_cutflow_hists(histograms), "/cutflow")

    log_truth_diagnostics(sum_truth_diagnostics(histograms))
    logger.info("Histograms saved to %s.", output_file)
    return output_file


def sum_hists(my_hists):
    """Sum each observable histogram over datasets; inputs are left untouched."""
    if not my_hists:
        raise ValueError("No histogram data provided.")

    summed = {}
    for payload in my_hists.values():
        for key, value in payload.items():
            if key in _NON_HIST_KEYS or not isinstance(value, Hist):
                continue
            if key in summed:
                summed[key] += value
            else:
                summed[key] = value.copy()
    return summed
