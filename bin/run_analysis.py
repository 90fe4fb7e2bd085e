import os
os.environ.setdefault("NUMEXPR_MAX_THREADS", "1")

import warnings
warnings.filterwarnings("ignore", category=FutureWarning, module="coffea.*")
warnings.filterwarnings("ignore", category=RuntimeWarning, message="Missing cross-reference", module="coffea.*")
import argparse
import time
import logging
from contextlib import contextmanager
from pathlib import Path

from hhcoffea.era_utils import get_era_details
from hhcoffea.cli_utils import ALL_SAMPLES, list_eras, load_and_select_fileset

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')


# Integer options that must be >= 1 when given.
_POSITIVE_INT_OPTIONS = ("max_workers", "threads_per_worker", "chunksize", "maxchunks", "maxfiles")


def validate_arguments(args):
    """Reject non-positive worker, chunk and file counts before any cluster is started."""
    for dest in _POSITIVE_INT_OPTIONS:
        value = getattr(args, dest)
        if value is not None and value < 1:
            flag = "--" + dest.replace("_", "-")
            raise ValueError(f"{flag} must be a positive integer, got {value}")


# ---------------------------------------------------------------------------
# Cluster context managers
# ---------------------------------------------------------------------------

@contextmanager
def _local_cluster(*, n_workers, threads_per_worker):
    """Set up a local Dask cluster, yield client, clean up on exit."""
    from dask.distributed import Client, LocalCluster

    cluster = LocalCluster(n_workers=n_workers, threads_per_worker=threads_per_worker)
    client = Client(cluster)
    try:
        yield client
    finally:
        client.close()
        cluster.close()


# ---------------------------------------------------------------------------
# Processing
# ---------------------------------------------------------------------------

def _process_fileset(args, fileset, *, client):
    """Preprocess and process a fileset, return histograms."""
    from coffea.nanoevents import NanoAODSchema
    from coffea.processor import Runner, DaskExecutor
    from hhcoffea.analyzer import HHAnalysis

    NanoAODSchema.warn_missing_crossrefs = False

    processor = HHAnalysis(
        enabled_systs=args.systs,
        tree_dir=str(args.write_trees) if args.write_trees else None,
        debug=args.debug,
    )
    run = Runner(
        executor=DaskExecutor(client=client, compression=None, retries=3),
        chunksize=args.chunksize,
        maxchunks=args.maxchunks,
        # Skip bad files to continue processing with remaining files
        skipbadfiles=True,
        savemetrics=True,
        schema=NanoAODSchema,
    )

    logging.info("***PREPROCESSING***")
    preproc = run.preprocess(fileset=fileset, treename="Events")
    logging.info("Preprocessing completed")

    logging.info("***PROCESSING***")
    hists, _ = run(preproc, treename="Events", processor_instance=processor)
    logging.info("Processing completed")
    return hists


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser():
    parser = argparse.ArgumentParser(description="Processing script for the HH -> llbb analysis.")
    parser.add_argument("era", type=str, choices=list_eras(), help="Campaign to analyze.")
    parser.add_argument("fileset", type=Path, help="Fileset JSON ({dataset: {files, metadata}}).")
    optional = parser.add_argument_group("Optional arguments")
    optional.add_argument("--sample", type=str, default=ALL_SAMPLES, help="Keep only datasets with this physics_group or sample (default: all).")
    optional.add_argument("--dir", type=str, default=None, help="Create a new output directory.")
    optional.add_argument("--name", type=str, default=None, help="Append the filenames of the output ROOT files.")
    optional.add_argument("--debug", action='store_true', help="Dump the resolved generator truth of the first events of each chunk.")
    optional.add_argument("--verbose", action='store_true', help="Log at DEBUG level.")
    optional.add_argument("--max-workers", type=int, default=None, help="Number of local Dask workers (default: 3).")
    optional.add_argument("--threads-per-worker", type=int, default=None, help="Threads per Dask worker (LocalCluster threads_per_worker).")
    optional.add_argument("--chunksize", type=int, default=250_000, help="Number of events per processing chunk (default: 250000).")
    optional.add_argument("--maxchunks", type=int, default=None, help="Max chunks per dataset file (default: all). Use 1 for quick testing.")
    optional.add_argument("--maxfiles", type=int, default=None, help="Max files per dataset (default: all). Use 1 for quick testing.")
    optional.add_argument("--systs", nargs="*", default=[], choices=["lumi"], help="Enable systematic histogram variations. Supported: lumi.")
    optional.add_argument("--write-trees", type=Path, default=None, help="Also write the per-event record of every chunk as a ROOT tree below this directory.")
    optional.add_argument("--no-save", action='store_true', help="Run without writing the histogram ROOT file.")
    optional.add_argument("--preflight-only", action="store_true", help="Validate fileset path/schema and selection, then exit without processing.")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.verbose or args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    logging.info(f"Analyzing {args.era} - {args.sample} events")
    validate_arguments(args)
    get_era_details(args.era)

    logging.info(f"Reading files from {args.fileset}")
    fileset = load_and_select_fileset(
        filepath=args.fileset,
        desired_process=args.sample,
        maxfiles=args.maxfiles,
    )

    n_files = sum(len(ds["files"]) for ds in fileset.values())
    logging.info("%d dataset(s) with %d file(s) to process.", len(fileset), n_files)

    if args.preflight_only:
        logging.info("Preflight only; not starting a cluster.")
        return None

    started = time.monotonic()
    with _local_cluster(
        n_workers=args.max_workers or 3,
        threads_per_worker=args.threads_per_worker or 1,
    ) as client:
        try:
            hists = _process_fileset(args, fileset, client=client)
            if not args.no_save:
                from hhcoffea.save_hists import save_histograms
                save_histograms(hists, args)
        except Exception:
            logging.exception("Processing on the local cluster failed.")
            raise

    logging.info(f"Execution took {(time.monotonic() - started) / 60:.2f} minutes")
    return hists


if __name__ == "__main__":
    main()
