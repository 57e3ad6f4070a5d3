"""Onul dispatch engine: project hierarchy, eligibility and role-scoped dashboards."""

__version__ = "0.3.0"
