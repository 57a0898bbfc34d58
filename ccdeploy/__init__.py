"""ccdeploy - sign and submit credential deployment transactions."""

__version__ = "0.1.0"
