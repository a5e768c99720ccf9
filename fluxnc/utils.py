# fluxnc/utils.py

import copy
import logging
import os
import re
import subprocess

import pandas as pd
import yaml

from fluxnc.config import DEFAULT_CONVERSION_SETTINGS, SITE_FILE_PATTERN
from fluxnc.data_model import ProcessingArgs

logger = logging.getLogger(__name__)


def load_conversion_settings(settings_yaml_path):
    """
    Loads conversion settings from a YAML file, merged section by section over
    DEFAULT_CONVERSION_SETTINGS. Falls back to the defaults if the file is
    missing or cannot be parsed.

    Args:
        settings_yaml_path (str): Path to the settings YAML file.

    Returns:
        dict: The merged settings.
    """
    settings = copy.deepcopy(DEFAULT_CONVERSION_SETTINGS)
    user_settings = {}
    try:
        if settings_yaml_path and os.path.exists(settings_yaml_path):
            with open(settings_yaml_path, "r") as stream:
                user_settings = yaml.safe_load(stream) or {}
            logger.info(f"Loaded conversion settings from: {settings_yaml_path}")
        else:
            logger.warning(f"Conversion settings file not found. Using package defaults.")
    except yaml.YAMLError as exc:
        logger.error(f"Error parsing YAML: {exc}. Falling back to defaults.")
        user_settings = {}

    for section, value in user_settings.items():
        # 'variables' replaces the defaults so the output order follows the file
        if isinstance(value, dict) and isinstance(settings.get(section), dict) and section != 'variables':
            settings[section].update(value)
        else:
            settings[section] = value
    return settings


def get_git_revision():
    """Revision tag of the running code, 'unknown' outside a git checkout."""
    try:
        result = subprocess.run(['git', 'describe', '--always', '--dirty'], capture_output=True, text=True,
                                cwd=os.path.dirname(os.path.abspath(__file__)), check=True)
    except (OSError, subprocess.CalledProcessError) as e:
        logger.debug(f"Could not determine git revision: {e}")
        return "unknown"
    return result.stdout.strip() or "unknown"


def processing_args_from_settings(settings, infile, revision=None):
    """Collects the options of one run into a ProcessingArgs record."""
    return ProcessingArgs(
        infile=infile,
        aggregate=settings.get('aggregate'),
        revision=revision if revision is not None else get_git_revision(),
        contact=settings.get('contact'),
        **settings['thresholds'],
        **settings['gapfilling'],
        **settings['dataset'],
    )


def site_code_from_filename(file_path):
    """
    Finds the site code from an input file name, e.g. 'AU-Tum' from
    'FLX_AU-Tum_FLUXNET2015_FULLSET_HH_2001-2014_1-3.csv'.

    Returns:
        str or None: The site code, or None if the name does not match.
    """
    match = re.match(SITE_FILE_PATTERN, os.path.basename(file_path))
    if match is None:
        logger.debug(f"--- No site code found in '{os.path.basename(file_path)}' ---")
        return None
    return match.group(1)


def output_filename(outdir, site_code, index, args, category):
    """Output file path, e.g. <outdir>/AU-Tum_2002-2017_FLUXNET2015_1-3_Met.nc"""
    start_year = index.start[0].year
    # last time step ends on the first instant of the following year
    end_year = (index.end[-1] - pd.Timedelta(seconds=1)).year
    return os.path.join(outdir, f"{site_code}_{start_year}-{end_year}_{args.datasetname}_"
                                f"{args.datasetversion}_{category}.nc")


def create_output_dirs(base_path, sub_dirs):
    """
    Creates a list of nested output directories if they do not already exist.
    """
    for sub_dir in sub_dirs:
        full_path = os.path.join(base_path, sub_dir)
        os.makedirs(full_path, exist_ok=True)
