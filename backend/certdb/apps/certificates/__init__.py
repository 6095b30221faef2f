# backend/certdb/apps/certificates/__init__.py
"""
Certificates app
Responsible for: issued certificates (numbering, renewal chain, revocation,
suspension, verification) and externally issued employee certificates.
"""
from . import models, schemas, services  # noqa: F401

__all__ = ["models", "schemas", "services"]
