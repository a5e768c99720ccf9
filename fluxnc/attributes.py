# fluxnc/attributes.py

"""
Assembly of global and per-variable NetCDF attributes.

Attributes are returned as an ordered list of `Attribute(scope, key, value, precision)`
records, where scope is GLOBAL_SCOPE or the name of a variable. Optional site
fields that are absent never produce an attribute.
"""

import datetime
import functools
import logging
from collections import namedtuple

import numpy as np
from timezonefinder import TimezoneFinder

from fluxnc.config import GLOBAL_SCOPE, PACKAGE_CONTACT, TIME_INFO
from fluxnc.data_model import is_missing, mask_missing
from fluxnc.errors import ConfigurationError, TimezoneLookupError

logger = logging.getLogger(__name__)

Attribute = namedtuple('Attribute', ['scope', 'key', 'value', 'precision'])
StaticRecord = namedtuple('StaticRecord', ['name', 'units', 'long_name', 'value', 'is_text'])


# (SiteMetadata field, attribute name, formatter, precision)
SITE_ATTRIBUTES = [
    ('tier', 'Fluxnet site tier', str, 'text'),
    ('description', 'site_description', str, 'text'),
    ('vegetation_description', 'vegetation_description', str, 'text'),
    ('soil_type', 'soil_type', str, 'text'),
    ('disturbance', 'disturbance', str, 'text'),
    ('crop_description', 'crop_description', str, 'text'),
    ('irrigation', 'irrigation', str, 'text'),
    ('tower_status', 'tower_status', str, 'text'),
]


def _site_field(field):
    return lambda site: (getattr(site, field), None)


def _reference_height(site):
    # Use measurement height if available, else take tower height
    if not is_missing(site.measurement_height):
        return site.measurement_height, "measurement height"
    if not is_missing(site.tower_height):
        return site.tower_height, "tower height"
    return None, None


# (variable name, units, long name, resolver returning (value, source), fixed-width text)
OPTIONAL_SITE_VARIABLES = [
    ('reference_height', 'm', 'Reference height of flux tower', _reference_height, False),
    ('canopy_height', 'm', 'Canopy height', _site_field('canopy_height'), False),
    ('elevation', 'm', 'Site elevation', _site_field('elevation'), False),
    ('IGBP_veg_short', '-', 'IGBP vegetation type (short)', _site_field('igbp_short'), True),
    ('IGBP_veg_long', '-', 'IGBP vegetation type (long)', _site_field('igbp_long'), True),
]


@functools.lru_cache(maxsize=None)
def _timezone_finder():
    return TimezoneFinder()


def lookup_timezone(latitude, longitude):
    """
    Returns the IANA time zone name of a location.

    Raises:
        TimezoneLookupError: if no zone is found for the coordinates.
    """
    tz_name = _timezone_finder().timezone_at(lat=latitude, lng=longitude)
    if tz_name is None:
        raise TimezoneLookupError(f"No time zone found for latitude {latitude}, longitude {longitude}.")
    return tz_name


def qc_flag_description(qc_flags):
    """Legend text for the quality-flag codes of the input dataset."""
    def codes(key):
        return ", ".join(str(code) for code in qc_flags.get(key, []))

    return (f"Measured: {codes('QC_measured')}, Good-quality gapfilling: {codes('QC_good')}, "
            f"Medium-quality gapfilling: {codes('QC_medium')}, Poor-quality gapfilling: {codes('QC_poor')}")


def missing_percentage(table, names=None):
    """Percentage of missing values per variable."""
    names = table.names if names is None else names
    nrows = max(len(table), 1)
    return {name: 100.0 * np.isnan(mask_missing(table.column(name))).sum() / nrows for name in names}


def gapfilled_percentage(table, index, observed_codes, qc_suffix, names=None):
    """
    Percentage of gap-filled values per variable, derived from the paired
    quality-flag column. Variables without a quality-flag column report 0.

    Before aggregation the flags are codes and any code outside `observed_codes`,
    a missing code included, counts as gap-filled. After aggregation the flags
    are observed fractions and the gap-filled share is one minus their mean, so
    both give the same result for the same data.
    """
    names = table.names if names is None else names
    nrows = max(len(table), 1)
    observed_codes = list(observed_codes)

    gapfilled = {}
    for name in names:
        qc_name = f"{name}{qc_suffix}"
        if name.endswith(qc_suffix) or qc_name not in table:
            gapfilled[name] = 0.0
            continue
        flags = mask_missing(table.column(qc_name))
        if index.aggregated:
            valid = flags[~np.isnan(flags)]
            gapfilled[name] = 100.0 * float(np.mean(1.0 - valid)) if len(valid) else 0.0
        else:
            filled = ~np.isin(flags, observed_codes)
            gapfilled[name] = 100.0 * filled.sum() / nrows
    return gapfilled


def optional_site_variables(site):
    """Static site variables backed by a value in the site metadata, in output order."""
    records = []
    for name, units, long_name, resolver, is_text in OPTIONAL_SITE_VARIABLES:
        value, _ = resolver(site)
        if not is_missing(value):
            records.append(StaticRecord(name, units, long_name, value, is_text))
    return records


def _format_threshold(value):
    return "NA" if value is None else str(value)


def _site_attributes(site, qc_info, production_time, args):
    attrs = [
        Attribute(GLOBAL_SCOPE, 'Production_time', production_time, 'text'),
        Attribute(GLOBAL_SCOPE, 'Github_revision', args.revision, 'text'),
        Attribute(GLOBAL_SCOPE, 'site_code', site.site_code, 'text'),
        Attribute(GLOBAL_SCOPE, 'site_name', str(site.fullname), 'text'),
        Attribute(GLOBAL_SCOPE, 'country', str(site.country), 'text'),
        Attribute(GLOBAL_SCOPE, 'Fluxnet_dataset_version', args.datasetversion, 'text'),
    ]
    for field, key, formatter, precision in SITE_ATTRIBUTES:
        value = getattr(site, field)
        if not is_missing(value):
            attrs.append(Attribute(GLOBAL_SCOPE, key, formatter(value), precision))
    attrs.append(Attribute(GLOBAL_SCOPE, 'QC_flag_descriptions', qc_info, 'text'))
    return attrs


def _processing_attributes(args, index, category):
    attrs = [
        Attribute(GLOBAL_SCOPE, 'Input_file', args.infile, 'text'),
        Attribute(GLOBAL_SCOPE, 'Processing_thresholds(%)',
                  f"missing: {_format_threshold(args.missing)}, "
                  f"gapfill_all: {_format_threshold(args.gapfill_all)}, "
                  f"gapfill_good: {_format_threshold(args.gapfill_good)}, "
                  f"gapfill_med: {_format_threshold(args.gapfill_med)}, "
                  f"gapfill_poor: {_format_threshold(args.gapfill_poor)}, "
                  f"min_yrs: {_format_threshold(args.min_yrs)}", 'text'),
    ]

    if index.aggregated:
        attrs.append(Attribute(GLOBAL_SCOPE, 'Timestep_aggregation',
                               f"Aggregated from {index.original_step_seconds / 3600:g} hours "
                               f"to {index.step_seconds / 3600:g} hours", 'text'))

    if category == 'Met' and args.met_gapfill is not None:
        attrs.append(Attribute(GLOBAL_SCOPE, 'Gapfilling_method', args.met_gapfill, 'text'))
        if args.met_gapfill == 'statistical':
            attrs.append(Attribute(GLOBAL_SCOPE, 'Gapfilling_thresholds',
                                   f"linfill: {_format_threshold(args.linfill)}, "
                                   f"copyfill: {_format_threshold(args.copyfill)}, "
                                   f"lwdown_method: {_format_threshold(args.lwdown_method)}", 'text'))
        elif args.met_gapfill == 'ERAinterim' and args.era_file is not None:
            attrs.append(Attribute(GLOBAL_SCOPE, 'ERAinterim_file', args.era_file, 'text'))
    elif category == 'Flux' and args.flux_gapfill is not None:
        attrs.append(Attribute(GLOBAL_SCOPE, 'Gapfilling_method', args.flux_gapfill, 'text'))
        attrs.append(Attribute(GLOBAL_SCOPE, 'Gapfilling_thresholds',
                               f"linfill: {_format_threshold(args.linfill)}, "
                               f"copyfill: {_format_threshold(args.copyfill)}, "
                               f"regfill: {_format_threshold(args.regfill)}", 'text'))

    if args.datasetname == 'LaThuile' and args.fair_use is not None:
        attrs.append(Attribute(GLOBAL_SCOPE, 'LaThuile_fair_use_policies', args.fair_use, 'text'))
    if args.datasetname == 'FLUXNET2015' and args.flx2015_version is not None:
        attrs.append(Attribute(GLOBAL_SCOPE, 'FLUXNET2015_version', args.flx2015_version, 'text'))
    return attrs


def _variable_attributes(table, name, missing, gapfilled, args, category):
    info = table.variables[name]
    attrs = [Attribute(name, 'Fluxnet_name', info.source_name, 'text')]
    if not is_missing(info.standard_name):
        attrs.append(Attribute(name, 'standard_name', info.standard_name, 'text'))
    if not is_missing(info.cmip_name):
        attrs.append(Attribute(name, 'CMIP_short_name', info.cmip_name, 'text'))
    if category == 'Met' and args.met_gapfill == 'ERAinterim' and not is_missing(info.era_name):
        attrs.append(Attribute(name, 'ERA-Interim variable used in gapfilling', info.era_name, 'text'))
    attrs.append(Attribute(name, 'Missing_%', round(float(missing[name]), 1), 'double'))
    attrs.append(Attribute(name, 'Gap-filled_%', round(float(gapfilled[name]), 1), 'double'))

    gapfill_selected = args.met_gapfill if category == 'Met' else args.flux_gapfill
    method = table.gapfill_methods.get(name)
    if gapfill_selected is not None and not is_missing(method):
        attrs.append(Attribute(name, 'Gapfilling_method', method, 'text'))
    return attrs


def _as_mapping(values, names):
    if isinstance(values, dict):
        return values
    values = list(values)
    if len(values) != len(names):
        raise ConfigurationError(f"Expected {len(names)} per-variable statistics, got {len(values)}.")
    return dict(zip(names, values))


def assemble_attributes(site, args, table, index, missing, gapfilled, category,
                        variables=None, global_atts=None, tz_lookup=lookup_timezone,
                        production_time=None):
    """
    Builds the ordered attribute list of one output file.

    Args:
        site (SiteMetadata): Site attributes.
        args (ProcessingArgs): Options the conversion ran with.
        table (VariableTable): Final (possibly aggregated) table.
        index (TimeIndex): Time steps of the table.
        missing (dict or sequence): Missing percentage per variable.
        gapfilled (dict or sequence): Gap-filled percentage per variable.
        category (str): 'Met' or 'Flux'.
        variables (list, optional): Variables written to the file, defaults to the category's variables.
        global_atts (dict, optional): Upstream global attributes, replicated verbatim.
        tz_lookup (callable): (latitude, longitude) -> time zone name.
        production_time (str, optional): Defaults to the current local time.

    Returns:
        list of Attribute
    """
    variables = table.names_in(category) if variables is None else list(variables)
    absent = [name for name in variables if name not in table]
    if absent:
        raise ConfigurationError(f"Variables not found in table: {absent}")
    missing = _as_mapping(missing, variables)
    gapfilled = _as_mapping(gapfilled, variables)

    if production_time is None:
        production_time = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')

    attrs = _site_attributes(site, table.qc_info, production_time, args)

    # Time stamp and time zone
    attrs.append(Attribute('time', 'standard_name', 'time', 'text'))
    attrs.append(Attribute('time', 'info', TIME_INFO, 'text'))
    attrs.append(Attribute('time', 'time_zone', tz_lookup(site.latitude, site.longitude), 'text'))

    attrs.extend(_processing_attributes(args, index, category))
    attrs.append(Attribute(GLOBAL_SCOPE, 'Package contact', args.contact or PACKAGE_CONTACT, 'text'))

    attrs.append(Attribute('latitude', 'standard_name', 'latitude', 'text'))
    attrs.append(Attribute('longitude', 'standard_name', 'longitude', 'text'))

    # Record where the reference height comes from
    _, height_source = _reference_height(site)
    if height_source is not None:
        attrs.append(Attribute('reference_height', 'Source', height_source, 'text'))

    for name in variables:
        attrs.extend(_variable_attributes(table, name, missing, gapfilled, args, category))

    if global_atts:
        logger.debug(f"Copying {len(global_atts)} upstream global attributes")
        for key, value in global_atts.items():
            attrs.append(Attribute(GLOBAL_SCOPE, key, value, None))

    return attrs
