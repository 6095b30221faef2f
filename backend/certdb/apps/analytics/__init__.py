# backend/certdb/apps/analytics/__init__.py
"""
Analytics app
Responsible for: per training type compliance statistics, risk and priority
scoring, department rollups, expiry buckets and the statistics cache.
"""
from . import models, schemas, services  # noqa: F401

__all__ = ["models", "schemas", "services"]
