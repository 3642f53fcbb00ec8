"""Reward amount formulas.

    creation    = (base + quality_bonus) * (1 + min(0.5, early_engagement * 0.1))
                  base = composite * base_rate
                  quality_bonus = base * (quality_multiplier - 1) if quality > threshold
    propagation = base + influence * 0.05 + loop_bonus
                  base = original_score * edge_weight * 0.1
                  loop_bonus = base * (propagation_multiplier - 1) if loop > threshold
    discovery   = score * 0.05 * (1 + (1 - timing) + min(0.3, influence * 0.1))
    quality     = improvement * quality_bonus_base * tier

All formulas are pure; amounts are returned as floats and quantized to
Decimal by the allocator.
"""

from echolayer.errors import InputValidationError

from .config import RewardConfig


def _require_unit(name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise InputValidationError(
            f"{name} must be between 0.0 and 1.0, got {value}", **{name: value}
        )


def _require_non_negative(name: str, value: float) -> None:
    if value < 0.0:
        raise InputValidationError(
            f"{name} must be non-negative, got {value}", **{name: value}
        )


class RewardCalculator:
    """Stateless reward formulas parameterized by RewardConfig."""

    def __init__(self, config: RewardConfig | None = None) -> None:
        self._config = config or RewardConfig()

    def creation_reward(
        self,
        composite_score: float,
        quality_score: float,
        early_engagement: float,
    ) -> float:
        _require_unit("composite_score", composite_score)
        _require_unit("quality_score", quality_score)
        _require_non_negative("early_engagement", early_engagement)

        base = composite_score * self._config.base_rate
        quality_bonus = (
            base * (self._config.quality_multiplier - 1.0)
            if quality_score > self._config.quality_threshold
            else 0.0
        )
        engagement_factor = min(0.5, early_engagement * 0.1)
        return (base + quality_bonus) * (1.0 + engagement_factor)

    def propagation_reward(
        self,
        original_score: float,
        edge_weight: float,
        propagator_influence: float,
        loop_strength: float,
    ) -> float:
        _require_unit("original_score", original_score)
        _require_unit("propagator_influence", propagator_influence)
        _require_unit("loop_strength", loop_strength)
        if edge_weight <= 0.0:
            raise InputValidationError(
                f"edge_weight must be positive, got {edge_weight}",
                edge_weight=edge_weight,
            )

        base = original_score * edge_weight * 0.1
        influence_bonus = propagator_influence * 0.05
        loop_bonus = (
            base * (self._config.propagation_multiplier - 1.0)
            if loop_strength > self._config.loop_bonus_threshold
            else 0.0
        )
        return base + influence_bonus + loop_bonus

    def discovery_bonus(
        self,
        discovered_score: float,
        discovery_timing: float,
        discoverer_influence: float,
    ) -> float:
        """Bonus for surfacing content early.

        discovery_timing is 0.0 for the very first discoverer and 1.0 for
        the latest.
        """
        _require_unit("discovered_score", discovered_score)
        _require_unit("discovery_timing", discovery_timing)
        _require_unit("discoverer_influence", discoverer_influence)

        timing_bonus = 1.0 - discovery_timing
        influence_bonus = min(0.3, discoverer_influence * 0.1)
        return discovered_score * 0.05 * (1.0 + timing_bonus + influence_bonus)

    @staticmethod
    def quality_tier(
        viral_coefficient: float,
        engagement_rate: float,
        retention_rate: float,
    ) -> float:
        if viral_coefficient > 2.0:
            return 2.0
        if engagement_rate > 0.8:
            return 1.5
        if retention_rate > 0.7:
            return 1.2
        return 1.0

    def quality_bonus(
        self,
        improvement: float,
        viral_coefficient: float = 0.0,
        engagement_rate: float = 0.0,
        retention_rate: float = 0.0,
    ) -> float:
        """Bonus for a measured quality improvement, scaled by performance tier."""
        _require_non_negative("improvement", improvement)
        _require_non_negative("viral_coefficient", viral_coefficient)
        _require_unit("engagement_rate", engagement_rate)
        _require_unit("retention_rate", retention_rate)

        tier = self.quality_tier(viral_coefficient, engagement_rate, retention_rate)
        return improvement * self._config.quality_bonus_base * tier

    def creator_share(self, propagation_amount: float) -> float:
        """Portion of a propagation reward owed to the original creator."""
        return propagation_amount * self._config.creator_share
