# tests/test_data_loader.py

import copy

import pytest
import numpy as np
import pandas as pd
import xarray as xr

from fluxnc.config import DEFAULT_CONVERSION_SETTINGS
from fluxnc.data_loader import load_gapfilled_table, load_global_attributes, load_model_parameters, \
    load_site_metadata

SITE_YAML = """
AU-Tum:
  fullname: Tumbarumba
  country: Australia
  latitude: -35.6566
  longitude: 148.1517
  elevation: 1200
  tower_height: 70
  canopy_height: -9999
  igbp_short: EBF
  network_url: http://www.ozflux.org.au
  model_parameters:
    - varname: LAI_max
      units: m2/m2
      longname: Maximum leaf area index
      value: 4.0
    - varname: soil_depth
      value: -99999
US-Ha1:
  fullname: Harvard Forest EMS Tower
  country: USA
  latitude: 42.5378
  longitude: -72.1715
"""


### --- Fixtures for Sample Data --- ###

@pytest.fixture(scope="module")
def settings():
    return copy.deepcopy(DEFAULT_CONVERSION_SETTINGS)


@pytest.fixture(scope="module")
def gapfilled_csv(tmp_path_factory):
    """Four half-hourly steps in FLUXNET2015 layout, with both missing markers."""
    start = pd.date_range("2001-01-01 00:00", periods=4, freq="30min")
    frame = pd.DataFrame({
        'TIMESTAMP_START': start.strftime('%Y%m%d%H%M'),
        'TIMESTAMP_END': (start + pd.Timedelta(minutes=30)).strftime('%Y%m%d%H%M'),
        'TA_F': [10.5, -9999, 11.0, 12.5],
        'TA_F_QC': [0, 1, 0, 2],
        'H_F_MDS': [100.0, 110.0, -99999, 90.0],
        'H_F_MDS_QC': [0, 0, -9999, 0],
        'GPP_NT_VUT_REF': [1.0, 2.0, 3.0, 4.0],
        'SW_IN_POT': [0.0, 0.0, 0.0, 0.0],
    })
    path = tmp_path_factory.mktemp("csv") / "FLX_AU-Tum_FLUXNET2015_FULLSET_HH_2001-2001_1-3.csv"
    frame.to_csv(path, index=False)
    return str(path)


@pytest.fixture(scope="module")
def site_yaml(tmp_path_factory):
    path = tmp_path_factory.mktemp("sites") / "sites.yml"
    path.write_text(SITE_YAML)
    return str(path)


### --- Tests for load_gapfilled_table --- ###

def test_load_gapfilled_table_variables(gapfilled_csv, settings):
    table, index = load_gapfilled_table(gapfilled_csv, settings)

    assert table.names == ['Tair', 'Tair_qc', 'GPP', 'Qh', 'Qh_qc']
    assert table.variables['Tair'].source_name == 'TA_F'
    assert table.variables['Tair_qc'].source_name == 'TA_F_QC'
    assert table.variables['Tair_qc'].aggregation is None
    assert table.variables['Qh'].category == 'Flux'
    assert 'GPP_qc' not in table
    assert len(table) == len(index) == 4


def test_load_gapfilled_table_missing_markers(gapfilled_csv, settings):
    table, _ = load_gapfilled_table(gapfilled_csv, settings)

    assert np.isnan(table.column('Tair')[1])
    assert np.isnan(table.column('Qh')[2])
    assert np.isnan(table.column('Qh_qc')[2])
    assert np.isclose(table.column('Tair')[3], 12.5)


def test_load_gapfilled_table_time_index(gapfilled_csv, settings):
    _, index = load_gapfilled_table(gapfilled_csv, settings)

    assert index.step_seconds == 1800
    assert not index.aggregated
    assert index.start[0] == pd.Timestamp("2001-01-01 00:00")
    assert index.end[-1] == pd.Timestamp("2001-01-01 02:00")


def test_load_gapfilled_table_qc_legend(gapfilled_csv, settings):
    table, _ = load_gapfilled_table(gapfilled_csv, settings)
    assert table.qc_info.startswith("Measured: 0, Good-quality gapfilling: 1")


def test_load_gapfilled_table_gapfill_methods(gapfilled_csv, settings):
    settings = dict(settings, gapfill_methods={'Tair': 'linear interpolation', 'LWdown': 'Abramowitz_2012'})
    table, _ = load_gapfilled_table(gapfilled_csv, settings)
    assert table.gapfill_methods == {'Tair': 'linear interpolation'}


def test_load_gapfilled_table_rejects_irregular_steps(tmp_path, settings):
    frame = pd.DataFrame({
        'TIMESTAMP_START': ['200101010000', '200101010030', '200101010130'],
        'TIMESTAMP_END': ['200101010030', '200101010100', '200101010200'],
        'TA_F': [1.0, 2.0, 3.0],
    })
    path = tmp_path / "irregular.csv"
    frame.to_csv(path, index=False)
    with pytest.raises(ValueError, match="uniform step"):
        load_gapfilled_table(str(path), settings)


### --- Tests for site metadata --- ###

def test_load_site_metadata(site_yaml):
    site = load_site_metadata(site_yaml, 'AU-Tum')
    assert site.site_code == 'AU-Tum'
    assert site.fullname == 'Tumbarumba'
    assert site.latitude == pytest.approx(-35.6566)
    assert site.tower_height == 70
    assert site.canopy_height == -9999
    assert site.measurement_height is None


def test_load_site_metadata_minimal(site_yaml):
    site = load_site_metadata(site_yaml, 'US-Ha1')
    assert site.country == 'USA'
    assert site.igbp_short is None


def test_load_site_metadata_unknown_site(site_yaml):
    with pytest.raises(KeyError, match="US-Xyz"):
        load_site_metadata(site_yaml, 'US-Xyz')


def test_load_model_parameters(site_yaml):
    params = load_model_parameters(site_yaml, 'AU-Tum')
    assert [param.varname for param in params] == ['LAI_max', 'soil_depth']
    assert params[0].units == 'm2/m2'
    assert params[0].value == pytest.approx(4.0)
    assert params[1].units == '-'
    assert params[1].longname == 'soil_depth'


def test_load_model_parameters_none(site_yaml):
    assert load_model_parameters(site_yaml, 'US-Ha1') == []


### --- Tests for load_global_attributes --- ###

def test_load_global_attributes(tmp_path):
    path = tmp_path / "AU-Tum.nc"
    ds = xr.Dataset({'Fc': (('time',), np.arange(3.0))}, coords={'time': np.arange(3.0)})
    ds.attrs = {'nc_level': 'L6', 'site_name': 'Tumbarumba', 'time_step': 30}
    ds.to_netcdf(path)

    attrs = load_global_attributes(str(path))
    assert attrs['nc_level'] == 'L6'
    assert attrs['site_name'] == 'Tumbarumba'
    assert attrs['time_step'] == 30


def test_load_global_attributes_missing_file(tmp_path):
    assert load_global_attributes(str(tmp_path / "no_such_file.nc")) is None
