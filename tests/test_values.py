from __future__ import annotations

import unittest

from svgrender_core.scene.values import (
    add_values,
    format_color,
    interpolate,
    parse_color,
    parse_length,
    scale_value,
    zero_like,
)


class ValueParsingTests(unittest.TestCase):
    def test_parse_color_forms(self) -> None:
        self.assertEqual(parse_color("red"), (255, 0, 0, 255))
        self.assertEqual(parse_color("#00ff00"), (0, 255, 0, 255))
        self.assertEqual(parse_color("rgba(0, 0, 255, 0.5)"), (0, 0, 255, 128))
        self.assertEqual(parse_color("transparent"), (0, 0, 0, 0))
        self.assertIsNone(parse_color("none"))
        self.assertIsNone(parse_color("url(#grad)"))
        self.assertIsNone(parse_color("12px"))

    def test_format_color(self) -> None:
        self.assertEqual(format_color((1, 2, 3, 255)), "rgb(1, 2, 3)")
        self.assertEqual(format_color((1, 2, 3, 0)), "rgba(1, 2, 3, 0)")

    def test_parse_length(self) -> None:
        self.assertEqual(parse_length("12.5px"), 12.5)
        self.assertIsNone(parse_length("50%"))
        self.assertEqual(parse_length(None, 3.0), 3.0)
        self.assertEqual(parse_length("auto", 1.0), 1.0)


class ValueInterpolationTests(unittest.TestCase):
    def test_numbers_and_units(self) -> None:
        self.assertEqual(interpolate("0", "10", 0.25), "2.5")
        self.assertEqual(interpolate("10px", "20px", 0.5), "15px")
        self.assertEqual(interpolate("10", "20px", 0.5), "15px")

    def test_colors_interpolate_per_channel(self) -> None:
        self.assertEqual(interpolate("red", "blue", 0.5), "rgb(128, 0, 128)")

    def test_number_lists_keep_their_separators(self) -> None:
        self.assertEqual(interpolate("0,0 10,0", "10,10 20,10", 0.5), "5,5 15,5")

    def test_non_interpolable_values_switch_halfway(self) -> None:
        self.assertEqual(interpolate("hidden", "visible", 0.49), "hidden")
        self.assertEqual(interpolate("hidden", "visible", 0.5), "visible")

    def test_additive_helpers(self) -> None:
        self.assertEqual(add_values("10", "5"), "15")
        self.assertEqual(add_values("rgb(10, 0, 0)", "rgb(250, 5, 0)"), "rgb(255, 5, 0)")
        self.assertEqual(scale_value("3px", 2), "6px")
        self.assertEqual(zero_like("7 8"), "0 0")


if __name__ == "__main__":
    unittest.main()
