"""Google API proxy for the campus portal."""

__version__ = "0.1.0"
