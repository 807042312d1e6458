import uuid
from typing import Iterable, Tuple


def new_id(prefix: str) -> str:
    """Return a unique identifier such as ``workout_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


class MathTools:
    """Provides essential mathematical utilities for workout calculations."""

    @staticmethod
    def clamp(value: float, min_value: float, max_value: float) -> float:
        """Clamp ``value`` to the inclusive range [min_value, max_value]."""
        if min_value > max_value:
            raise ValueError("min_value must not exceed max_value")
        return max(min_value, min(value, max_value))

    @staticmethod
    def volume(sets: Iterable[Tuple[int, float]]) -> float:
        """Compute training volume as the sum of reps times weight."""
        vol = 0.0
        for reps, weight in sets:
            vol += reps * weight
        return vol

    @staticmethod
    def split_evenly(amount: float, keys: Iterable[str]) -> dict[str, float]:
        """Divide ``amount`` equally between ``keys``."""
        keys = list(keys)
        if not keys:
            return {}
        share = amount / len(keys)
        result: dict[str, float] = {}
        for key in keys:
            result[key] = result.get(key, 0.0) + share
        return result

    @staticmethod
    def linear_decay(elapsed: float, horizon: float) -> float:
        """Return 1.0 at zero elapsed time falling linearly to 0.0 at ``horizon``."""
        if horizon <= 0:
            raise ValueError("horizon must be positive")
        if elapsed <= 0:
            return 1.0
        if elapsed >= horizon:
            return 0.0
        return 1.0 - elapsed / horizon

    @staticmethod
    def percentage_change(current: float, previous: float) -> float:
        """Relative change in percent; 100 when growing from zero."""
        if previous == 0:
            return 100.0 if current > 0 else 0.0
        return (current - previous) / previous * 100.0


class WeightConverter:
    """Utility for converting between kg and lb."""

    KG_TO_LB = 2.20462

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def display(kg: float, unit: str = "kg") -> float:
        """Express a stored kilogram value in ``unit``."""
        if unit == "lb":
            return WeightConverter.kg_to_lb(kg)
        if unit != "kg":
            raise ValueError(f"unknown unit {unit}")
        return round(kg, 2)
