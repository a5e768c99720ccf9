# fluxnc/temporal_aggregator.py

import logging

import numpy as np
import pandas as pd
import xarray as xr

from fluxnc.config import QC_FRACTION_INFO
from fluxnc.data_model import TimeIndex, VariableTable, mask_missing
from fluxnc.errors import ConfigurationError

logger = logging.getLogger(__name__)


def qc_fraction(codes, observed_codes):
    """
    Fraction of quality-flag codes that denote directly observed data.

    Args:
        codes (array-like): Quality-flag codes of one aggregation window.
        observed_codes (iterable): Codes meaning "measured, not gap-filled".

    Returns:
        float: count of observed codes divided by the window length.
    """
    codes = np.asarray(codes)
    return np.isin(codes, list(observed_codes)).sum() / len(codes)


def _steps_per_target(step_seconds, target_step_hours, nrows):
    target_seconds = target_step_hours * 3600
    if target_seconds % step_seconds != 0:
        raise ConfigurationError(
            f"Cannot aggregate from {step_seconds / 3600} hours to {target_step_hours} hours: "
            f"the new time step must be a multiple of the original time step."
        )
    steps_per_target = int(target_seconds // step_seconds)
    if steps_per_target < 1:
        raise ConfigurationError(
            f"Cannot aggregate from {step_seconds / 3600} hours to {target_step_hours} hours: "
            f"the new time step must be at least as long as the original time step."
        )
    if nrows % steps_per_target != 0:
        raise ConfigurationError(
            f"Cannot aggregate {nrows} time steps of {step_seconds / 3600} hours to {target_step_hours} hours: "
            f"number of time steps is not divisible by {steps_per_target}."
        )
    return steps_per_target


def _aggregate_variable(values, steps_per_target, temporal_agg_method):
    """
    Internal helper aggregating one column over contiguous windows.
    A window containing any missing value aggregates to NaN.
    """
    windows = xr.DataArray(mask_missing(values), dims='time').coarsen(time=steps_per_target)

    normalized_temporal_agg_method = temporal_agg_method.strip().lower()
    if normalized_temporal_agg_method == 'mean':
        return windows.reduce(np.mean).values
    elif normalized_temporal_agg_method == 'sum':
        return windows.reduce(np.sum).values
    else:
        raise ConfigurationError(f"Unsupported temporal aggregation method: '{temporal_agg_method}'.")


def aggregate_tsteps(table, index, target_step_hours, observed_codes, qc_suffix):
    """
    Aggregates a table to a coarser time step.

    Quality-flag variables (names ending with `qc_suffix`) become the fraction of
    observed time steps in each window. Other variables are averaged or summed
    according to their aggregation method, with no tolerance for missing values.

    Args:
        table (VariableTable): Input table, left unchanged.
        index (TimeIndex): Time steps of the table, left unchanged.
        target_step_hours (float): New time step in hours.
        observed_codes (iterable): Quality-flag codes meaning "measured".
        qc_suffix (str): Suffix identifying quality-flag variables.

    Returns:
        tuple: (VariableTable, TimeIndex) at the new time step.
    """
    if index.aggregated:
        raise ConfigurationError(
            f"Data have already been aggregated from {index.original_step_seconds / 3600} hours "
            f"to {index.step_seconds / 3600} hours, aggregating a second time is not supported."
        )
    if len(table) != len(index):
        raise ConfigurationError(f"Table has {len(table)} rows but time index has {len(index)} time steps.")

    steps_per_target = _steps_per_target(index.step_seconds, target_step_hours, len(index))
    logger.info(f"Aggregating {len(index)} time steps from {index.step_seconds / 3600} to {target_step_hours} hours "
                f"({steps_per_target} steps per window).")

    new_data = {}
    for name, info in table.variables.items():
        values = table.column(name)

        # QC variable: calculate fraction observed
        if name.endswith(qc_suffix):
            if info.aggregation is not None:
                raise ConfigurationError(
                    f"Aggregation method for QC variable '{name}' not set correctly. "
                    f"Method must be unset for QC variables, please amend output variable definitions."
                )
            logger.debug(f"Calculating observed fraction for '{name}'")
            windows = np.asarray(values).reshape(-1, steps_per_target)
            new_data[name] = np.array([qc_fraction(window, observed_codes) for window in windows])

        # Other variables: average or sum up
        else:
            if info.aggregation is None:
                raise ConfigurationError(
                    f"Aggregation method for variable '{name}' not set. "
                    f"Method must be set to 'mean' or 'sum', please amend output variable definitions."
                )
            logger.debug(f"Aggregating '{name}' with method '{info.aggregation}'")
            new_data[name] = _aggregate_variable(values, steps_per_target, info.aggregation)

    new_index = TimeIndex(
        start=index.start[::steps_per_target],
        end=index.end[steps_per_target - 1::steps_per_target],
        step_seconds=index.step_seconds * steps_per_target,
        original_step_seconds=index.step_seconds,
    )

    new_table = VariableTable(
        data=pd.DataFrame(new_data, columns=table.names),
        variables=dict(table.variables),
        gapfill_methods=dict(table.gapfill_methods),
        qc_info=QC_FRACTION_INFO,
    )
    return new_table, new_index
