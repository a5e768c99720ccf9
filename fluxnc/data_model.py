# fluxnc/data_model.py

"""
Records shared between aggregation, attribute assembly and NetCDF writing.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional

import numpy as np
import pandas as pd

from fluxnc.config import NC_MISSING_VAL, SPRD_MISSING_VAL


def is_missing(value):
    """True if value is None, NaN, blank text or one of the two missing-value sentinels."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        if np.isnan(value):
            return True
    except (TypeError, ValueError):
        return False
    return value == NC_MISSING_VAL or value == SPRD_MISSING_VAL


def mask_missing(values):
    """Returns a float copy of values with both sentinels replaced by NaN."""
    values = np.array(values, dtype=float)
    values[np.isin(values, [NC_MISSING_VAL, SPRD_MISSING_VAL])] = np.nan
    return values


@dataclass(eq=False)
class TimeIndex:
    """Half-open (start, end) time steps, one per table row."""
    start: pd.DatetimeIndex
    end: pd.DatetimeIndex
    step_seconds: int
    original_step_seconds: Optional[int] = None

    def __post_init__(self):
        self.start = pd.DatetimeIndex(self.start)
        self.end = pd.DatetimeIndex(self.end)
        if len(self.start) != len(self.end):
            raise ValueError(f"TimeIndex needs as many end times ({len(self.end)}) as start times ({len(self.start)}).")

    @classmethod
    def from_start(cls, first_start, periods, step_seconds):
        start = pd.date_range(first_start, periods=periods, freq=pd.Timedelta(seconds=step_seconds))
        return cls(start, start + pd.Timedelta(seconds=step_seconds), int(step_seconds))

    def __len__(self):
        return len(self.start)

    @property
    def aggregated(self):
        return self.original_step_seconds is not None

    def offsets(self):
        """Seconds elapsed since the first time step, one per row."""
        return np.arange(len(self), dtype=float) * self.step_seconds

    def time_units(self):
        return f"seconds since {self.start[0].strftime('%Y-%m-%d %H:%M:%S')}"


@dataclass(frozen=True)
class VariableInfo:
    name: str
    source_name: str
    units: str
    long_name: str
    category: str
    aggregation: Optional[str] = None
    standard_name: Optional[str] = None
    cmip_name: Optional[str] = None
    era_name: Optional[str] = None


@dataclass(eq=False)
class VariableTable:
    """
    Ordered set of named columns and their metadata.

    `data` holds one column per entry of `variables`, in the same order.
    `gapfill_methods` maps variable names to the gap-filling method applied upstream.
    """
    data: pd.DataFrame
    variables: Dict[str, VariableInfo]
    gapfill_methods: Dict[str, str] = field(default_factory=dict)
    qc_info: str = ""

    def __post_init__(self):
        missing_cols = [name for name in self.variables if name not in self.data.columns]
        if missing_cols:
            raise ValueError(f"No data columns for variables: {missing_cols}")
        self.data = self.data[list(self.variables)]

    @property
    def names(self):
        return list(self.variables)

    def __len__(self):
        return len(self.data)

    def __contains__(self, name):
        return name in self.variables

    def column(self, name):
        return self.data[name].to_numpy()

    def names_in(self, category):
        return [name for name, info in self.variables.items() if info.category == category]


@dataclass(frozen=True)
class SiteMetadata:
    site_code: str
    fullname: str
    country: str
    latitude: float
    longitude: float
    elevation: Optional[float] = None
    canopy_height: Optional[float] = None
    measurement_height: Optional[float] = None
    tower_height: Optional[float] = None
    igbp_short: Optional[str] = None
    igbp_long: Optional[str] = None
    tier: Optional[str] = None
    description: Optional[str] = None
    vegetation_description: Optional[str] = None
    soil_type: Optional[str] = None
    disturbance: Optional[str] = None
    crop_description: Optional[str] = None
    irrigation: Optional[str] = None
    tower_status: Optional[str] = None


@dataclass(frozen=True)
class ProcessingArgs:
    """Options a conversion ran with, reported in the output attributes."""
    infile: str = ""
    missing: Optional[float] = None
    gapfill_all: Optional[float] = None
    gapfill_good: Optional[float] = None
    gapfill_med: Optional[float] = None
    gapfill_poor: Optional[float] = None
    min_yrs: Optional[int] = None
    aggregate: Optional[float] = None
    met_gapfill: Optional[str] = None
    flux_gapfill: Optional[str] = None
    linfill: Optional[float] = None
    copyfill: Optional[float] = None
    regfill: Optional[float] = None
    lwdown_method: Optional[str] = None
    era_file: Optional[str] = None
    datasetname: str = "FLUXNET2015"
    datasetversion: str = ""
    fair_use: Optional[str] = None
    flx2015_version: Optional[str] = None
    revision: str = "unknown"
    contact: Optional[str] = None


@dataclass(frozen=True)
class ModelParameter:
    varname: str
    units: str
    longname: str
    value: Optional[float] = None
