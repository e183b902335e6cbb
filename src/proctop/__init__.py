"""proctop - a top-like process monitor."""

__version__ = "0.1.0"
