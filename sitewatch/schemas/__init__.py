"""Site Watcher Schemas Package

API schemas for data validation.
"""

from .classifier_schemas import ClassifierVerdict

__all__ = [
    "ClassifierVerdict",
]
