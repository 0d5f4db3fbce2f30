# backend/labedu/__init__.py
"""
Import ORM models from each app so that Alembic and
Base.metadata.create_all() see every table.

The model classes live in labedu/apps/*/models.py.
"""

from .apps.organization import models as organization_models  # units / sectors / roles / employees
from .apps.training import models as training_models  # modules, matrix, schedules, enrollments

__all__ = [
    "organization_models",
    "training_models",
]
