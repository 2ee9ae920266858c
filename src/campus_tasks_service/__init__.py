"""Campus tasks service: task lifecycle and collaboration engine."""

__version__ = "0.1.0"
