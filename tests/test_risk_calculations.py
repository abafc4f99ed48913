import unittest
from unittest.mock import MagicMock

from grclink.errors import ApiError, NetworkError
from grclink.models import ControlEffect, RiskLevelRanges
from grclink.risk_calculations import (
    calculate_inherent_risk,
    calculate_residual_impact,
    calculate_residual_probability,
    calculate_residual_risk,
    calculate_residual_risk_from_controls,
    fetch_risk_level_ranges,
    get_risk_level,
    get_risk_level_text,
)


def control(effectiveness, target):
    return {"effectiveness": effectiveness, "effectTarget": target}


class ResidualRiskTests(unittest.TestCase):
    def test_inherent_risk(self) -> None:
        self.assertEqual(calculate_inherent_risk(3, 4), 12)

    def test_residual_risk_rounds_half_up(self) -> None:
        self.assertEqual(calculate_residual_risk(12, 25), 9.0)
        self.assertEqual(calculate_residual_risk(4.5, 50), 2.3)

    def test_controls_reduce_their_target_multiplicatively(self) -> None:
        controls = [control(50, "probability"), control(20, "probability"), control(90, "impact")]

        self.assertEqual(calculate_residual_probability(5, controls), 2.0)
        self.assertEqual(calculate_residual_impact(5, controls), 0.5)

    def test_both_target_applies_to_each_factor(self) -> None:
        controls = [ControlEffect(effectiveness=50, effect_target="both")]

        self.assertEqual(calculate_residual_probability(4, controls), 2.0)
        self.assertEqual(calculate_residual_impact(5, controls), 2.5)

    def test_no_matching_controls_returns_input(self) -> None:
        self.assertEqual(calculate_residual_probability(3.7, [control(80, "impact")]), 3.7)
        self.assertEqual(calculate_residual_impact(4, []), 4)

    def test_factors_are_clamped(self) -> None:
        self.assertEqual(calculate_residual_probability(1, [control(99, "probability")]), 0.1)
        self.assertEqual(calculate_residual_impact(6, [control(0, "impact")]), 5.0)

    def test_residual_risk_from_controls(self) -> None:
        controls = [control(50, "probability"), control(40, "impact")]

        self.assertEqual(calculate_residual_risk_from_controls(4, 5, controls), 6.0)
        self.assertEqual(
            calculate_residual_risk_from_controls(1, 1, [control(100, "both")]), 0.1
        )


class RiskLevelTests(unittest.TestCase):
    def test_default_bands(self) -> None:
        levels = [get_risk_level(value) for value in (1, 6, 6.1, 12, 19, 19.5, 25)]

        self.assertEqual(levels, [1, 1, 2, 2, 3, 4, 4])

    def test_custom_bands(self) -> None:
        ranges = RiskLevelRanges(low_max=4, medium_max=8, high_max=16)

        self.assertEqual(get_risk_level(5, ranges), 2)
        self.assertEqual(get_risk_level_text(17, ranges), "Crítico")

    def test_level_text(self) -> None:
        self.assertEqual(
            [get_risk_level_text(value) for value in (2, 10, 15, 20)],
            ["Bajo", "Medio", "Alto", "Crítico"],
        )

    def test_fetch_ranges_from_api(self) -> None:
        api = MagicMock()
        api.get_json.return_value = {"lowMax": 5, "mediumMax": 10, "highMax": 15}

        ranges = fetch_risk_level_ranges(api)

        self.assertEqual((ranges.low_max, ranges.medium_max, ranges.high_max), (5, 10, 15))
        api.get_json.assert_called_once_with(("/api/system-config/risk-level-ranges",))

    def test_fetch_ranges_falls_back_to_defaults(self) -> None:
        for failure in (ApiError("forbidden", status=403), NetworkError("Failed to fetch")):
            api = MagicMock()
            api.get_json.side_effect = failure

            self.assertEqual(fetch_risk_level_ranges(api), RiskLevelRanges())

        api = MagicMock()
        api.get_json.return_value = {"lowMax": "many"}
        self.assertEqual(fetch_risk_level_ranges(api), RiskLevelRanges())


if __name__ == "__main__":
    unittest.main()
