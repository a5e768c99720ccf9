# tests/test_pipeline.py

import dataclasses
import os

import pytest
import numpy as np
import pandas as pd
from netCDF4 import Dataset

from fluxnc.config import DEFAULT_CONVERSION_SETTINGS, QC_FRACTION_INFO
from fluxnc.data_model import ProcessingArgs, SiteMetadata, TimeIndex, VariableInfo, VariableTable
from fluxnc.pipeline import convert_site

QC_FLAGS = DEFAULT_CONVERSION_SETTINGS['qc_flags']
SITE = SiteMetadata(site_code='AU-Tum', fullname='Tumbarumba', country='Australia',
                    latitude=-35.6566, longitude=148.1517, tower_height=70.0, igbp_short='EBF')
ARGS = ProcessingArgs(infile='FLX_AU-Tum_FLUXNET2015_FULLSET_HH_2001-2001_1-3.csv',
                      datasetname='FLUXNET2015', datasetversion='1-3', flx2015_version='FULLSET')


def sydney(latitude, longitude):
    return "Australia/Sydney"


@pytest.fixture
def site_data():
    """One day of half-hourly Met and Flux data."""
    nrows = 48
    variables = {
        'Tair': VariableInfo('Tair', 'TA_F', 'C', 'Near surface air temperature', 'Met', 'mean'),
        'Tair_qc': VariableInfo('Tair_qc', 'TA_F_QC', '-', 'Air temperature quality control flag', 'Met'),
        'Precip': VariableInfo('Precip', 'P_F', 'mm', 'Precipitation', 'Met', 'sum'),
        'Qle': VariableInfo('Qle', 'LE_F_MDS', 'W/m2', 'Latent heat flux', 'Flux', 'mean'),
    }
    data = pd.DataFrame({
        'Tair': np.linspace(5.0, 15.0, nrows),
        'Tair_qc': np.tile([0, 1], nrows // 2),
        'Precip': np.full(nrows, 0.5),
        'Qle': np.full(nrows, 80.0),
    })
    table = VariableTable(data=data, variables=variables, qc_info="Measured: 0")
    index = TimeIndex.from_start("2001-01-01 00:00", periods=nrows, step_seconds=1800)
    return table, index


def test_convert_site_writes_both_files(tmp_path, site_data):
    table, index = site_data
    outputs = convert_site(table, index, SITE, ARGS, str(tmp_path), QC_FLAGS, tz_lookup=sydney)

    assert set(outputs) == {'Met', 'Flux'}
    assert os.path.basename(outputs['Met']) == "AU-Tum_2001-2001_FLUXNET2015_1-3_Met.nc"
    assert os.path.basename(outputs['Flux']) == "AU-Tum_2001-2001_FLUXNET2015_1-3_Flux.nc"

    with Dataset(outputs['Met']) as nc:
        assert set(nc.variables) >= {'Tair', 'Tair_qc', 'Precip', 'reference_height', 'IGBP_veg_short'}
        assert 'Qle' not in nc.variables
        assert len(nc.dimensions['time']) == 48
        assert nc.variables['Tair'].getncattr('Gap-filled_%') == pytest.approx(50.0)
        assert nc.variables['time'].time_zone == "Australia/Sydney"
        assert 'Timestep_aggregation' not in nc.ncattrs()

    with Dataset(outputs['Flux']) as nc:
        assert 'Qle' in nc.variables
        assert 'Tair' not in nc.variables


def test_convert_site_with_aggregation(tmp_path, site_data):
    table, index = site_data
    args = dataclasses.replace(ARGS, aggregate=24)
    outputs = convert_site(table, index, SITE, args, str(tmp_path), QC_FLAGS, tz_lookup=sydney)

    with Dataset(outputs['Met']) as nc:
        assert len(nc.dimensions['time']) == 1
        assert nc.Timestep_aggregation == "Aggregated from 0.5 hours to 24 hours"
        assert nc.QC_flag_descriptions == QC_FRACTION_INFO
        assert nc.variables['Precip'][0, 0, 0] == pytest.approx(24.0)
        assert nc.variables['Tair_qc'][0, 0, 0] == pytest.approx(0.5)
        assert nc.variables['Tair'].getncattr('Gap-filled_%') == pytest.approx(50.0)

    # the caller's table is left at its native resolution
    assert len(table) == 48


def test_convert_site_skips_empty_category(tmp_path, site_data):
    table, index = site_data
    met_only = VariableTable(data=table.data, variables={name: info for name, info in table.variables.items()
                                                         if info.category == 'Met'})
    outputs = convert_site(met_only, index, SITE, ARGS, str(tmp_path), QC_FLAGS, tz_lookup=sydney)

    assert list(outputs) == ['Met']
    assert not any(name.endswith('_Flux.nc') for name in os.listdir(tmp_path))
