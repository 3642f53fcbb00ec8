"""Tests for reward formulas."""

import pytest

from echolayer.errors import InputValidationError
from echolayer.rewards.calculator import RewardCalculator
from echolayer.rewards.config import RewardConfig


class TestCreationReward:
    def test_quality_bonus_and_engagement(self, calculator: RewardCalculator) -> None:
        # base 0.8, quality bonus 0.4, engagement factor 0.2
        assert calculator.creation_reward(0.8, 0.9, 2.0) == pytest.approx(1.44)

    def test_no_bonus_at_threshold(self, calculator: RewardCalculator) -> None:
        assert calculator.creation_reward(0.8, 0.7, 0.0) == pytest.approx(0.8)

    def test_engagement_factor_capped(self, calculator: RewardCalculator) -> None:
        assert calculator.creation_reward(0.8, 0.5, 100.0) == pytest.approx(1.2)

    def test_base_rate_scales(self) -> None:
        calc = RewardCalculator(RewardConfig(base_rate=10.0))
        assert calc.creation_reward(0.5, 0.0, 0.0) == pytest.approx(5.0)

    def test_invalid_inputs(self, calculator: RewardCalculator) -> None:
        with pytest.raises(InputValidationError):
            calculator.creation_reward(1.2, 0.5, 0.0)
        with pytest.raises(InputValidationError):
            calculator.creation_reward(0.5, 0.5, -1.0)


class TestPropagationReward:
    def test_with_loop_bonus(self, calculator: RewardCalculator) -> None:
        # base 0.04, influence 0.03, loop bonus 0.04
        assert calculator.propagation_reward(0.8, 0.5, 0.6, 0.7) == pytest.approx(0.11)

    def test_without_loop_bonus(self, calculator: RewardCalculator) -> None:
        assert calculator.propagation_reward(0.8, 0.5, 0.6, 0.5) == pytest.approx(0.07)

    def test_non_positive_edge_weight(self, calculator: RewardCalculator) -> None:
        with pytest.raises(InputValidationError):
            calculator.propagation_reward(0.8, 0.0, 0.6, 0.7)

    def test_creator_share(self, calculator: RewardCalculator) -> None:
        assert calculator.creator_share(0.11) == pytest.approx(0.033)


class TestDiscoveryBonus:
    def test_early_discovery(self, calculator: RewardCalculator) -> None:
        assert calculator.discovery_bonus(0.8, 0.2, 0.5) == pytest.approx(0.8 * 0.05 * 1.85)

    def test_influence_bonus_capped(self, calculator: RewardCalculator) -> None:
        # min(0.3, 1.0 * 0.1) = 0.1
        assert calculator.discovery_bonus(1.0, 1.0, 1.0) == pytest.approx(0.05 * 1.1)

    def test_earlier_is_better(self, calculator: RewardCalculator) -> None:
        assert calculator.discovery_bonus(0.6, 0.0, 0.3) > calculator.discovery_bonus(0.6, 0.9, 0.3)

    def test_timing_out_of_range(self, calculator: RewardCalculator) -> None:
        with pytest.raises(InputValidationError):
            calculator.discovery_bonus(0.6, 1.5, 0.3)


class TestQualityBonus:
    @pytest.mark.parametrize(
        "viral,engagement,retention,tier",
        [
            (3.0, 0.0, 0.0, 2.0),
            (1.0, 0.9, 0.0, 1.5),
            (1.0, 0.5, 0.8, 1.2),
            (1.0, 0.5, 0.5, 1.0),
        ],
    )
    def test_tiers(self, calculator: RewardCalculator, viral, engagement, retention, tier) -> None:
        assert calculator.quality_bonus(0.2, viral, engagement, retention) == pytest.approx(
            0.2 * 10 * tier
        )

    def test_negative_improvement(self, calculator: RewardCalculator) -> None:
        with pytest.raises(InputValidationError):
            calculator.quality_bonus(-0.1)


class TestRewardConfig:
    def test_shares_must_sum_to_one(self) -> None:
        with pytest.raises(ValueError, match="sum to 1.0"):
            RewardConfig(creation_share=0.5)

    def test_defaults(self) -> None:
        config = RewardConfig()
        assert config.creation_share == 0.40
        assert config.reserve_share == 0.05
        assert config.propagation_multiplier == 2.0
