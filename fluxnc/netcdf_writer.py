# fluxnc/netcdf_writer.py

import logging
import os

import numpy as np
from netCDF4 import Dataset

from fluxnc.attributes import optional_site_variables
from fluxnc.config import GLOBAL_SCOPE, NC_MISSING_VAL, NCHAR
from fluxnc.data_model import is_missing, mask_missing
from fluxnc.errors import ConfigurationError

logger = logging.getLogger(__name__)


def valid_model_params(model_params):
    """Model parameters whose value is neither a missing sentinel nor null."""
    return [param for param in (model_params or []) if not is_missing(param.value)]


def _cast_attribute(value, precision):
    if precision == 'text':
        return str(value)
    elif precision == 'double':
        return np.float64(value)
    elif precision == 'float':
        return np.float32(value)
    elif precision == 'int':
        return np.int32(value)
    return value


def _fixed_width_text(value):
    """UTF-8 bytes of value as an NCHAR-long 'S1' array, space padded, cut on a character boundary."""
    encoded = str(value).encode('utf-8')[:NCHAR].decode('utf-8', 'ignore').encode('utf-8')
    return np.frombuffer(encoded.ljust(NCHAR, b' '), dtype='S1')


def _define_point_variable(nc, name, units, long_name):
    var = nc.createVariable(name, 'f4', ('y', 'x'), fill_value=np.float32(NC_MISSING_VAL))
    var.setncattr('missing_value', np.float32(NC_MISSING_VAL))
    var.units = units
    var.long_name = long_name
    return var


def _define_variables(nc, table, index, variables, statics, params):
    """First pass: dimensions and every variable, before any attribute is attached."""
    nc.createDimension('x', 1)
    nc.createDimension('y', 1)
    nc.createDimension('time', None)
    nc.createDimension('nchar', NCHAR)

    for dim in ('x', 'y'):
        nc.createVariable(dim, 'f8', (dim,))

    time_var = nc.createVariable('time', 'f8', ('time',))
    time_var.units = index.time_units()
    time_var.calendar = 'standard'

    # Time series variables
    for name in variables:
        info = table.variables[name]
        var = nc.createVariable(name, 'f4', ('time', 'y', 'x'), fill_value=np.float32(NC_MISSING_VAL))
        var.setncattr('missing_value', np.float32(NC_MISSING_VAL))
        var.units = info.units
        var.long_name = info.long_name

    # Necessary non-time variables
    _define_point_variable(nc, 'latitude', 'degrees_north', 'Latitude')
    _define_point_variable(nc, 'longitude', 'degrees_east', 'Longitude')

    # Optional non-time variables
    for record in statics:
        if record.is_text:
            var = nc.createVariable(record.name, 'S1', ('nchar',))
            var.units = record.units
            var.long_name = record.long_name
        else:
            _define_point_variable(nc, record.name, record.units, record.long_name)

    # Model parameters
    for param in params:
        if param.varname in nc.variables:
            raise ConfigurationError(f"Model parameter '{param.varname}' clashes with an output variable name.")
        _define_point_variable(nc, param.varname, param.units, param.longname)


def _write_contents(nc, table, index, site, attributes, variables, statics, params):
    """Second pass: attributes and values."""
    for attr in attributes:
        value = _cast_attribute(attr.value, attr.precision)
        if attr.scope == GLOBAL_SCOPE:
            nc.setncattr(attr.key, value)
        elif attr.scope in nc.variables:
            nc.variables[attr.scope].setncattr(attr.key, value)
        else:
            raise ConfigurationError(f"Attribute '{attr.key}' refers to variable '{attr.scope}' not defined in file.")

    nc.variables['x'][:] = 1
    nc.variables['y'][:] = 1
    nc.variables['time'][:] = index.offsets()

    nc.variables['latitude'][:] = site.latitude
    nc.variables['longitude'][:] = site.longitude

    for record in statics:
        if record.is_text:
            nc.variables[record.name][:] = _fixed_width_text(record.value)
        else:
            nc.variables[record.name][:] = record.value

    for name in variables:
        values = mask_missing(table.column(name))
        values = np.where(np.isnan(values), NC_MISSING_VAL, values)
        nc.variables[name][:] = values.reshape(-1, 1, 1)

    for param in params:
        nc.variables[param.varname][:] = param.value


def write_netcdf(path, table, index, site, args, attributes, variables, model_params=None):
    """
    Writes one NetCDF file for a single site.

    Args:
        path (str): Output file path.
        table (VariableTable): Data to write.
        index (TimeIndex): Time steps of the table.
        site (SiteMetadata): Site coordinates and optional static fields.
        args (ProcessingArgs): Options the conversion ran with.
        attributes (list of Attribute): Output of assemble_attributes.
        variables (list of str): Time series variables written to the file, in order.
        model_params (list of ModelParameter, optional): Site-level model parameters.

    Raises:
        ConfigurationError: if a variable is not in the table.
        IOError: if the file cannot be created or written.
    """
    variables = list(variables)
    absent = [name for name in variables if name not in table]
    if absent:
        raise ConfigurationError(f"Variables selected for {os.path.basename(path)} not found in table: {absent}")
    if len(table) != len(index):
        raise ConfigurationError(f"Table has {len(table)} rows but time index has {len(index)} time steps.")

    statics = optional_site_variables(site)
    params = valid_model_params(model_params)

    logger.info(f"Writing {len(variables)} variables and {len(index)} time steps to {path} "
                f"({args.datasetname} {args.datasetversion})")
    try:
        nc = Dataset(path, 'w', format='NETCDF4')
    except OSError as e:
        raise IOError(f"Could not create NetCDF file {path}: {e}") from e

    try:
        with nc:
            _define_variables(nc, table, index, variables, statics, params)
            _write_contents(nc, table, index, site, attributes, variables, statics, params)
    except (OSError, RuntimeError) as e:
        _remove_partial(path)
        raise IOError(f"Could not write NetCDF file {path}: {e}") from e
    except Exception:
        _remove_partial(path)
        raise
    return path


def _remove_partial(path):
    logger.error(f"Failed writing {path}, removing partially written file.")
    if os.path.exists(path):
        os.remove(path)


def write_category_file(path, table, index, site, args, attributes, category, model_params=None):
    """Writes the file of one output category ('Met' or 'Flux')."""
    return write_netcdf(path, table, index, site, args, attributes, table.names_in(category), model_params)
