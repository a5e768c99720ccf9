# fluxnc/data_loader.py

import dataclasses
import logging

import numpy as np
import pandas as pd
import xarray as xr
import yaml

from fluxnc.attributes import qc_flag_description
from fluxnc.config import NC_MISSING_VAL, QC_SUFFIX, SOURCE_QC_SUFFIX, SPRD_MISSING_VAL, \
    TIMESTAMP_FORMAT, TIMESTEP_SECONDS_TO_HOURS
from fluxnc.data_model import ModelParameter, SiteMetadata, TimeIndex, VariableInfo, VariableTable

# Setup logger for this module
logger = logging.getLogger(__name__)


def _variable_definitions(frame, definitions):
    """
    Matches output variable definitions to the columns present in an input file.
    Returns a list of (VariableInfo, source column) pairs in output order.
    """
    matched = []
    for out_name, definition in definitions.items():
        source_name = definition['source_name']
        if source_name not in frame.columns:
            logger.warning(f"Variable '{source_name}' ({out_name}) not found in input file. Skipping.")
            continue

        matched.append((VariableInfo(
            name=out_name,
            source_name=source_name,
            units=definition['units'],
            long_name=definition['long_name'],
            category=definition['category'],
            aggregation=definition.get('aggregation'),
            standard_name=definition.get('standard_name'),
            cmip_name=definition.get('cmip_name'),
            era_name=definition.get('era_name'),
        ), source_name))

        qc_source = f"{source_name}{SOURCE_QC_SUFFIX}"
        if definition.get('qc') and qc_source in frame.columns:
            matched.append((VariableInfo(
                name=f"{out_name}{QC_SUFFIX}",
                source_name=qc_source,
                units='-',
                long_name=f"{definition['long_name']} quality control flag",
                category=definition['category'],
            ), qc_source))
    return matched


def load_gapfilled_table(csv_path, settings):
    """
    Loads a gap-filled site file (FLUXNET2015 layout) into a VariableTable and TimeIndex.

    Args:
        csv_path (str): Path to the CSV file with TIMESTAMP_START/TIMESTAMP_END columns.
        settings (dict): Conversion settings with 'variables', 'qc_flags' and
            optionally 'gapfill_methods' sections.

    Returns:
        tuple: (VariableTable, TimeIndex)
    """
    frame = pd.read_csv(csv_path, na_values=[NC_MISSING_VAL, SPRD_MISSING_VAL])

    start = pd.to_datetime(frame['TIMESTAMP_START'].astype(str), format=TIMESTAMP_FORMAT)
    end = pd.to_datetime(frame['TIMESTAMP_END'].astype(str), format=TIMESTAMP_FORMAT)
    step_seconds = int((end.iloc[0] - start.iloc[0]).total_seconds())
    if len(start) > 1 and not np.all(start.diff().iloc[1:].dt.total_seconds() == step_seconds):
        raise ValueError(f"Time steps in {csv_path} are not contiguous with a uniform step of {step_seconds} s.")
    if step_seconds not in TIMESTEP_SECONDS_TO_HOURS:
        logger.warning(f"Unusual input time step of {step_seconds} s in {csv_path}.")

    matched = _variable_definitions(frame, settings['variables'])
    data = pd.DataFrame({info.name: frame[source].to_numpy(dtype=float) for info, source in matched})
    variables = {info.name: info for info, _ in matched}

    gapfill_methods = {name: method for name, method in settings.get('gapfill_methods', {}).items()
                       if name in variables}

    table = VariableTable(data=data, variables=variables, gapfill_methods=gapfill_methods,
                          qc_info=qc_flag_description(settings['qc_flags']))
    index = TimeIndex(start=start, end=end, step_seconds=step_seconds)
    logger.info(f"Loaded {len(variables)} variables and {len(index)} time steps from {csv_path}")
    return table, index


def load_global_attributes(nc_path):
    """
    Reads the global attributes of an upstream NetCDF file (e.g. OzFlux L6 files),
    to be replicated onto the output files.

    Returns:
        dict or None: The global attributes, or None if the file cannot be read.
    """
    try:
        with xr.open_dataset(nc_path, decode_times=False) as ds:
            return dict(ds.attrs)
    except (OSError, ValueError) as e:
        logger.error(f"Error opening NetCDF file {nc_path}: {e}")
        return None


def _load_site_entry(yaml_path, site_code):
    with open(yaml_path, "r") as stream:
        sites = yaml.safe_load(stream) or {}
    if site_code not in sites:
        raise KeyError(f"Site '{site_code}' not found in site metadata file {yaml_path}.")
    return sites[site_code]


def load_site_metadata(yaml_path, site_code):
    """
    Loads the metadata of one site from a YAML file keyed by site code.
    Keys that are not SiteMetadata fields (e.g. 'model_parameters') are ignored.
    """
    entry = _load_site_entry(yaml_path, site_code)
    known = {f.name for f in dataclasses.fields(SiteMetadata)}
    values = {key: value for key, value in entry.items() if key in known}
    values['site_code'] = site_code
    return SiteMetadata(**values)


def load_model_parameters(yaml_path, site_code):
    """Loads the 'model_parameters' list of one site, empty if the site has none."""
    entry = _load_site_entry(yaml_path, site_code)
    return [ModelParameter(varname=param['varname'], units=param.get('units', '-'),
                           longname=param.get('longname', param['varname']), value=param.get('value'))
            for param in entry.get('model_parameters', []) or []]
