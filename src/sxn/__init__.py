"""sxn: provision isolated development sessions from declarative rules."""

__version__ = "0.1.0"
