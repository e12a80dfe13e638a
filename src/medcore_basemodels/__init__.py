"""Medcore Base Models - Shared abstract models and concurrency helpers."""

__version__ = "0.1.0"

__all__ = [
    "TimeStampedModel",
    "UUIDModel",
    "BaseModel",
    "OptimisticLockModel",
]


def __getattr__(name):
    """Lazy import models to avoid AppRegistryNotReady errors."""
    if name in __all__:
        from medcore_basemodels import models
        return getattr(models, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
