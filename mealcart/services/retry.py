"""
Exponential backoff with jitter, shared by the sync queue and the meal-plan client.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay: float = 1.0  # seconds
    max_delay: float = 30.0  # seconds
    backoff_factor: float = 2.0
    jitter_ratio: float = 0.1  # up to 10% extra, spreads retries across devices

    @classmethod
    def for_sync_queue(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.sync_max_retries,
            base_delay=settings.sync_base_retry_delay,
            max_delay=settings.sync_max_retry_delay,
            backoff_factor=settings.sync_backoff_factor,
        )

    @classmethod
    def for_meal_plans(cls, settings) -> "RetryPolicy":
        return cls(
            max_retries=settings.meal_plan_max_retries,
            base_delay=settings.meal_plan_base_delay,
            max_delay=settings.meal_plan_max_delay,
            backoff_factor=settings.meal_plan_backoff_factor,
        )


def calculate_retry_delay(attempt: int, policy: RetryPolicy = RetryPolicy()) -> float:
    """
    Delay before retry number ``attempt`` (0-based).

    min(base * factor**attempt, max) plus up to jitter_ratio of that.
    """
    delay = min(policy.base_delay * (policy.backoff_factor ** attempt), policy.max_delay)
    return delay + random.uniform(0, policy.jitter_ratio * delay)
