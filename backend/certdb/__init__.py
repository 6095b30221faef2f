# backend/certdb/__init__.py
"""
Import ORM models (and the services that register flush hooks) from each app
so that:

- Base.metadata.create_all() sees all tables.
- Every session recomputes training record and employee certificate status
  on flush.

The actual model classes are kept in certdb/apps/*/models.py.
"""

from .apps.personnel import models as personnel_models        # departments + employees
from .apps.training import models as training_models          # types, records, sequences
from .apps.certificates import models as certificates_models  # certificates + employee certificates
from .apps.analytics import models as analytics_models        # cached statistics
from .apps.audit import models as audit_models                # audit trail
from .apps.training import services as training_services      # noqa: F401  record flush hook
from .apps.certificates import services as certificates_services  # noqa: F401  employee certificate flush hook

__all__ = [
    "personnel_models",
    "training_models",
    "certificates_models",
    "analytics_models",
    "audit_models",
]
