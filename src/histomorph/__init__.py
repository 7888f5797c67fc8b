"""histomorph: morphometric analysis of stained tissue images."""

__version__ = "0.1.0"
