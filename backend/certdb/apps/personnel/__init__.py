# backend/certdb/apps/personnel/__init__.py
"""
Personnel app
Responsible for: departments, employees, employee lifecycle events.
"""
from . import models, schemas, services  # noqa: F401

__all__ = ["models", "schemas", "services"]
