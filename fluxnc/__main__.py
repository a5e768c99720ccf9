# fluxnc/__main__.py

import argparse
import logging
import multiprocessing
import os
import sys

from fluxnc.config import CONVERSION_SETTINGS_YAML
from fluxnc.data_loader import load_gapfilled_table, load_global_attributes, load_model_parameters, \
    load_site_metadata
from fluxnc.pipeline import convert_site
from fluxnc.utils import create_output_dirs, get_git_revision, load_conversion_settings, \
    processing_args_from_settings, site_code_from_filename

# --- Setup Logger ---
logger = logging.getLogger(__name__)


def process_site(task_args):
    """
    Worker function converting a single site file.
    Failures are logged and reported back so the remaining sites still run.

    Args:
        task_args (tuple): (site_code, csv_path, config)

    Returns:
        bool: True if the site was converted.
    """
    site_code, csv_path, config = task_args
    worker_logger = logging.getLogger(f"worker.{site_code}")
    worker_logger.info(f"--- Starting processing for site: {site_code} ---")

    try:
        settings = config['settings']
        site = load_site_metadata(config['site_yaml'], site_code)
        model_params = load_model_parameters(config['site_yaml'], site_code)
        global_atts = None
        if config['global_atts_dir']:
            upstream_path = os.path.join(config['global_atts_dir'], f"{site_code}.nc")
            if os.path.exists(upstream_path):
                global_atts = load_global_attributes(upstream_path)

        table, index = load_gapfilled_table(csv_path, settings)
        args = processing_args_from_settings(settings, infile=csv_path, revision=config['revision'])
        outputs = convert_site(table, index, site, args, config['outdir'], settings['qc_flags'],
                               model_params=model_params, global_atts=global_atts)
    except Exception as e:
        worker_logger.error(f"Failed processing site {site_code}: {e}", exc_info=True)
        return False

    worker_logger.info(f"Finished processing site {site_code}: {sorted(outputs.values())}")
    return True


def main():
    parser = argparse.ArgumentParser(description="Convert gap-filled flux tower files to NetCDF.")
    parser.add_argument('--input_files', nargs='+', required=True, help="Gap-filled site CSV files (FLX_<site>_...).")
    parser.add_argument('--site_yaml', type=str, required=True, help="YAML file with site metadata keyed by site code.")
    parser.add_argument('--outdir', type=str, required=True, help="Directory for the output NetCDF files.")
    parser.add_argument('--settings_yaml', type=str, default=CONVERSION_SETTINGS_YAML, help="Path to conversion settings YAML.")
    parser.add_argument('--aggregate', type=float, default=None, help="Optional: target time step in hours.")
    parser.add_argument('--global_atts_dir', type=str, default=None,
                        help="Optional: directory of upstream <site>.nc files whose global attributes are copied.")
    parser.add_argument('--num_workers', type=int, default=1, help="Number of parallel workers. Use -1 for all CPUs.")
    parser.add_argument('--loglevel', type=str, default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], help="Set the logging level.")

    args = parser.parse_args()
    logging.basicConfig(level=getattr(logging, args.loglevel.upper()), format='%(asctime)s - %(processName)s - %(name)s - %(levelname)s - %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

    logger.info("--- Starting flux tower NetCDF conversion ---")

    settings = load_conversion_settings(args.settings_yaml)
    if args.aggregate is not None:
        settings['aggregate'] = args.aggregate

    tasks = []
    for csv_path in args.input_files:
        site_code = site_code_from_filename(csv_path)
        if site_code is None:
            logger.warning(f"Cannot determine site code from '{csv_path}'. Skipping.")
            continue
        tasks.append((site_code, csv_path))
    if not tasks:
        logger.info("No files to process.")
        sys.exit(0)

    create_output_dirs(args.outdir, [''])
    config_for_workers = {
        'settings': settings, 'site_yaml': args.site_yaml, 'outdir': args.outdir,
        'global_atts_dir': args.global_atts_dir, 'revision': get_git_revision(),
    }
    tasks = [(site_code, csv_path, config_for_workers) for site_code, csv_path in tasks]

    num_workers = args.num_workers
    if num_workers == -1: num_workers = os.cpu_count() or 1
    logger.info(f"Using {num_workers} parallel worker(s) for {len(tasks)} sites.")

    if num_workers > 1 and len(tasks) > 1:
        with multiprocessing.Pool(processes=num_workers) as pool:
            results = pool.map(process_site, tasks)
    else:
        logger.info("Starting conversion sequentially...")
        results = [process_site(task) for task in tasks]

    n_failed = results.count(False)
    logger.info(f"\n--- Conversion Complete! {len(results) - n_failed} site(s) converted, {n_failed} failed ---")
    if n_failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
