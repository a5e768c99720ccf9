# fluxnc/errors.py


class ConfigurationError(ValueError):
    """Raised when the variable rules or requested processing are inconsistent.

    Always fatal for the site being converted: it points at a bug in the
    variable definitions or run options, not at the data.
    """


class TimezoneLookupError(LookupError):
    """Raised when no time zone can be determined for a site location."""
