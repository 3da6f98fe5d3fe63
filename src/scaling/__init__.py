"""Ephemeral broker planning."""

from .ephemeral import ScalingPlan, apply_plan, plan_ephemeral_brokers

__all__ = ["ScalingPlan", "apply_plan", "plan_ephemeral_brokers"]
