"""Lifecycle reconciliation core for Cluster API style Cluster resources."""

__version__ = "0.1.0"
