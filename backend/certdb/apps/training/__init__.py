# backend/certdb/apps/training/__init__.py
"""
Training app
Responsible for: training types and providers, training records,
certificate numbering, save-time status recompute and the expiry sweep.
"""
from . import models, sequences, services  # noqa: F401

__all__ = ["models", "sequences", "services"]
