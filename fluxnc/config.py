# fluxnc/config.py

import os

# --- Default Paths ---
# CONVERSION_SETTINGS_YAML: Path to the YAML file overriding the conversion defaults below.
CONVERSION_SETTINGS_YAML = os.path.join(os.path.dirname(__file__), 'settings', 'settings.yaml')


# --- Missing value conventions ---
# General missing marker used throughout the NetCDF output.
NC_MISSING_VAL = -9999
# Legacy missing marker used by spreadsheet-era site metadata and some input files.
SPRD_MISSING_VAL = -99999

# Fixed width of character variables (IGBP vegetation class).
NCHAR = 200

# Suffix identifying quality-flag variables in the output variable names
QC_SUFFIX = '_qc'
# Suffix identifying quality-flag columns in the input files
SOURCE_QC_SUFFIX = '_QC'

# Scope marker for global (file-level) attributes
GLOBAL_SCOPE = 'global'

# Output categories, each one written to its own file
CATEGORIES = ('Met', 'Flux')

QC_FRACTION_INFO = "Fraction (0-1) of aggregated time steps that were observed"
TIME_INFO = "Time stamp indicates start time"
PACKAGE_CONTACT = "fluxnc maintainers (fluxnc@users.noreply.github.com)"

# Timestamp layout of TIMESTAMP_START/TIMESTAMP_END columns in the input files
TIMESTAMP_FORMAT = '%Y%m%d%H%M'
# Pattern matching input file names, e.g. FLX_AU-Tum_FLUXNET2015_FULLSET_HH_2001-2014_1-3.csv
SITE_FILE_PATTERN = r'^FLX_([A-Za-z]{2}-[A-Za-z0-9]{3})_'


# --- Conversion Configuration (DEFAULT settings if YAML is not found or incomplete) ---
# Each section is *merged with* the matching section of settings.yaml.
DEFAULT_CONVERSION_SETTINGS = {
    'qc_flags': {
        'QC_measured': [0],
        'QC_good': [1],
        'QC_medium': [2],
        'QC_poor': [3],
    },
    'thresholds': {
        'missing': 15,
        'gapfill_all': 20,
        'gapfill_good': None,
        'gapfill_med': None,
        'gapfill_poor': None,
        'min_yrs': 1,
    },
    'gapfilling': {
        'met_gapfill': None,
        'flux_gapfill': None,
        'linfill': 4,
        'copyfill': 10,
        'regfill': 30,
        'lwdown_method': 'Abramowitz_2012',
        'era_file': None,
    },
    'dataset': {
        'datasetname': 'FLUXNET2015',
        'datasetversion': '1-3',
        'flx2015_version': 'FULLSET',
        'fair_use': None,
    },
    'aggregate': None,
    # Output variables, in output order.
    # 'aggregation' is the temporal aggregation method, 'qc' adds the paired quality-flag column.
    'variables': {
        'SWdown': {
            'source_name': 'SW_IN_F', 'units': 'W/m2', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Surface incident shortwave radiation',
            'standard_name': 'surface_downwelling_shortwave_flux_in_air',
            'cmip_name': 'rsds', 'era_name': 'SW_IN_ERA', 'qc': True,
        },
        'LWdown': {
            'source_name': 'LW_IN_F', 'units': 'W/m2', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Surface incident longwave radiation',
            'standard_name': 'surface_downwelling_longwave_flux_in_air',
            'cmip_name': 'rlds', 'era_name': 'LW_IN_ERA', 'qc': True,
        },
        'Tair': {
            'source_name': 'TA_F', 'units': 'C', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Near surface air temperature',
            'standard_name': 'air_temperature',
            'cmip_name': 'tas', 'era_name': 'TA_ERA', 'qc': True,
        },
        'VPD': {
            'source_name': 'VPD_F', 'units': 'hPa', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Vapor pressure deficit',
            'standard_name': 'water_vapor_saturation_deficit_in_air',
            'cmip_name': None, 'era_name': 'VPD_ERA', 'qc': True,
        },
        'Psurf': {
            'source_name': 'PA_F', 'units': 'kPa', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Surface air pressure',
            'standard_name': 'surface_air_pressure',
            'cmip_name': 'ps', 'era_name': 'PA_ERA', 'qc': True,
        },
        'Precip': {
            'source_name': 'P_F', 'units': 'mm', 'category': 'Met', 'aggregation': 'sum',
            'long_name': 'Precipitation',
            'standard_name': 'precipitation_amount',
            'cmip_name': 'pr', 'era_name': 'P_ERA', 'qc': True,
        },
        'Wind': {
            'source_name': 'WS_F', 'units': 'm/s', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Scalar windspeed',
            'standard_name': 'wind_speed',
            'cmip_name': 'sfcWind', 'era_name': 'WS_ERA', 'qc': True,
        },
        'CO2air': {
            'source_name': 'CO2_F_MDS', 'units': 'umol/mol', 'category': 'Met', 'aggregation': 'mean',
            'long_name': 'Near surface CO2 concentration',
            'standard_name': 'mole_fraction_of_carbon_dioxide_in_air',
            'cmip_name': 'co2s', 'era_name': None, 'qc': True,
        },
        'NEE': {
            'source_name': 'NEE_VUT_REF', 'units': 'umol/m2/s', 'category': 'Flux', 'aggregation': 'mean',
            'long_name': 'Net ecosystem exchange of CO2',
            'standard_name': None,
            'cmip_name': 'nee', 'era_name': None, 'qc': True,
        },
        'GPP': {
            'source_name': 'GPP_NT_VUT_REF', 'units': 'umol/m2/s', 'category': 'Flux', 'aggregation': 'mean',
            'long_name': 'Gross primary productivity',
            'standard_name': 'gross_primary_productivity_of_biomass_expressed_as_carbon',
            'cmip_name': 'gpp', 'era_name': None, 'qc': False,
        },
        'Qle': {
            'source_name': 'LE_F_MDS', 'units': 'W/m2', 'category': 'Flux', 'aggregation': 'mean',
            'long_name': 'Latent heat flux',
            'standard_name': 'surface_upward_latent_heat_flux',
            'cmip_name': 'hfls', 'era_name': None, 'qc': True,
        },
        'Qh': {
            'source_name': 'H_F_MDS', 'units': 'W/m2', 'category': 'Flux', 'aggregation': 'mean',
            'long_name': 'Sensible heat flux',
            'standard_name': 'surface_upward_sensible_heat_flux',
            'cmip_name': 'hfss', 'era_name': None, 'qc': True,
        },
        'Qg': {
            'source_name': 'G_F_MDS', 'units': 'W/m2', 'category': 'Flux', 'aggregation': 'mean',
            'long_name': 'Ground heat flux',
            'standard_name': 'downward_heat_flux_at_ground_level_in_soil',
            'cmip_name': 'hfdsl', 'era_name': None, 'qc': True,
        },
    },
}


# Define mapping of input timestep seconds to common hourly representations
TIMESTEP_SECONDS_TO_HOURS = {
    1800: 0.5,     # half-hourly
    3600: 1,       # hourly
    24 * 3600: 24  # daily
}
