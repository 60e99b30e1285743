"""Pre-upgrade cluster checks for Greenplum."""

__version__ = "0.1.0"
