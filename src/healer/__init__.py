"""Cruise Control self-healing client."""

from .client import AnomalyType, CruiseControlHealer, HealerOptions

__all__ = ["AnomalyType", "CruiseControlHealer", "HealerOptions"]
