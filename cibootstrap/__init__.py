"""CI bootstrap: wire a new git repository into a Jenkins organization job."""

__version__ = "0.1.0"
