# fluxnc/pipeline.py

import logging

from fluxnc.attributes import assemble_attributes, gapfilled_percentage, lookup_timezone, missing_percentage
from fluxnc.config import CATEGORIES, QC_SUFFIX
from fluxnc.netcdf_writer import write_category_file
from fluxnc.temporal_aggregator import aggregate_tsteps
from fluxnc.utils import output_filename

logger = logging.getLogger(__name__)


def convert_site(table, index, site, args, outdir, qc_flags, qc_suffix=QC_SUFFIX,
                 model_params=None, global_atts=None, tz_lookup=lookup_timezone):
    """
    Converts one site's gap-filled table into a Met and a Flux NetCDF file.

    The table is aggregated first when `args.aggregate` is set. Categories
    without any variable in the table are not written.

    Returns:
        dict: Output file path per category.
    """
    observed_codes = qc_flags['QC_measured']

    if args.aggregate is not None:
        table, index = aggregate_tsteps(table, index, args.aggregate, observed_codes, qc_suffix)

    outputs = {}
    for category in CATEGORIES:
        variables = table.names_in(category)
        if not variables:
            logger.warning(f"No {category} variables for site {site.site_code}, {category} file not written.")
            continue

        missing = missing_percentage(table, variables)
        gapfilled = gapfilled_percentage(table, index, observed_codes, qc_suffix, variables)
        attributes = assemble_attributes(site, args, table, index, missing, gapfilled, category,
                                         variables=variables, global_atts=global_atts, tz_lookup=tz_lookup)

        path = output_filename(outdir, site.site_code, index, args, category)
        outputs[category] = write_category_file(path, table, index, site, args, attributes, category,
                                                model_params=model_params)
    return outputs
