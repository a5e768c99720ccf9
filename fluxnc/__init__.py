# fluxnc/__init__.py

"""
fluxnc
A Python package for converting gap-filled flux tower time series into
self-describing NetCDF files, with optional temporal aggregation.
"""

__version__ = "0.1.0"
