from __future__ import annotations

import math
import unittest
import xml.etree.ElementTree as ET

import numpy as np

from svgrender_core.scene import matrix as mx
from svgrender_core.scene.timing import (
    AnimationTiming,
    build_driver,
    interpolate_keyframes,
    parse_clock_value,
    parse_offset_list,
)


def _driver(markup: str, target_tag: str = "rect"):
    element = ET.fromstring(markup)
    driver = build_driver(element, ET.Element(target_tag), 0, lambda _id: None)
    assert driver is not None
    return driver


def _lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


class ClockValueTests(unittest.TestCase):
    def test_clock_values(self) -> None:
        self.assertEqual(parse_clock_value("1.5s"), 1.5)
        self.assertAlmostEqual(parse_clock_value("200ms"), 0.2)
        self.assertEqual(parse_clock_value("2min"), 120.0)
        self.assertEqual(parse_clock_value("00:01:30"), 90.0)
        self.assertEqual(parse_clock_value("0:02"), 2.0)
        self.assertEqual(parse_clock_value("3"), 3.0)
        self.assertIsNone(parse_clock_value("indefinite"))

    def test_offset_list_ignores_event_values(self) -> None:
        self.assertEqual(parse_offset_list("2s; click; 1s", default=()), [1.0, 2.0])
        self.assertEqual(parse_offset_list(None, default=(0.0,)), [0.0])
        self.assertEqual(parse_offset_list("indefinite", default=(0.0,)), [])


class AnimationTimingTests(unittest.TestCase):
    def test_sample_inside_and_after_active_interval(self) -> None:
        timing = AnimationTiming(begins=(0.0,), dur=2.0)
        self.assertEqual(timing.sample(1.0), (0.5, 0))
        self.assertIsNone(timing.sample(3.0))

    def test_freeze_holds_final_value(self) -> None:
        timing = AnimationTiming(begins=(0.0,), dur=2.0, fill="freeze")
        self.assertEqual(timing.sample(3.0), (1.0, 0))

    def test_repeat_count_tracks_iteration(self) -> None:
        timing = AnimationTiming(begins=(0.0,), dur=1.0, repeat_count=2.0)
        self.assertEqual(timing.sample(1.5), (0.5, 1))
        self.assertIsNone(timing.sample(2.5))
        self.assertTrue(math.isinf(AnimationTiming(begins=(0.0,), dur=1.0, repeat_count=math.inf).active_duration))

    def test_late_begin_and_early_end(self) -> None:
        self.assertIsNone(AnimationTiming(begins=(1.0,), dur=1.0).sample(0.5))
        timing = AnimationTiming(begins=(0.0,), dur=10.0, ends=(2.0,), fill="freeze")
        fraction, iteration = timing.sample(5.0)
        self.assertAlmostEqual(fraction, 0.2)
        self.assertEqual(iteration, 0)

    def test_from_element(self) -> None:
        element = ET.fromstring('<animate begin="0.5s" dur="250ms" repeatCount="indefinite" fill="freeze"/>')
        timing = AnimationTiming.from_element(element)
        self.assertEqual(timing.begins, (0.5,))
        self.assertAlmostEqual(timing.dur, 0.25)
        self.assertTrue(math.isinf(timing.repeat_count))
        self.assertEqual(timing.fill, "freeze")


class KeyframeTests(unittest.TestCase):
    def test_discrete_splits_interval_evenly(self) -> None:
        value = interpolate_keyframes(
            ["a", "b", "c"], 0.5, calc_mode="discrete", key_times=None, key_splines=None,
            lerp=lambda a, b, t: a, measure=lambda a, b: 0.0,
        )
        self.assertEqual(value, "b")

    def test_key_times_reshape_linear_segments(self) -> None:
        value = interpolate_keyframes(
            [0.0, 10.0, 20.0], 0.4, calc_mode="linear", key_times=[0.0, 0.8, 1.0], key_splines=None,
            lerp=_lerp, measure=lambda a, b: abs(b - a),
        )
        self.assertAlmostEqual(value, 5.0)

    def test_paced_uses_distance(self) -> None:
        value = interpolate_keyframes(
            [0.0, 1.0, 10.0], 0.5, calc_mode="paced", key_times=None, key_splines=None,
            lerp=_lerp, measure=lambda a, b: abs(b - a),
        )
        self.assertAlmostEqual(value, 5.0)

    def test_spline_eases_the_segment(self) -> None:
        eased = interpolate_keyframes(
            [0.0, 10.0], 0.25, calc_mode="spline", key_times=[0.0, 1.0], key_splines=[(0.42, 0.0, 1.0, 1.0)],
            lerp=_lerp, measure=lambda a, b: abs(b - a),
        )
        self.assertLess(eased, 2.5)


class AnimationDriverTests(unittest.TestCase):
    def test_from_to_animation(self) -> None:
        driver = _driver('<animate attributeName="x" from="0" to="10" dur="1s"/>')
        self.assertEqual(driver.attribute_value((0.5, 0), "0"), "5")

    def test_to_animation_starts_from_underlying_value(self) -> None:
        driver = _driver('<animate attributeName="x" to="10" dur="1s"/>')
        self.assertEqual(driver.attribute_value((0.5, 0), "4"), "7")

    def test_by_animation_is_additive(self) -> None:
        driver = _driver('<animate attributeName="x" by="5" dur="1s"/>')
        self.assertTrue(driver.additive)
        self.assertEqual(driver.attribute_value((1.0, 0), "10"), "15")

    def test_accumulate_sum_adds_completed_iterations(self) -> None:
        driver = _driver('<animate attributeName="x" from="0" to="10" dur="1s" accumulate="sum"/>')
        self.assertEqual(driver.attribute_value((0.5, 2), "0"), "25")

    def test_set_is_discrete_and_never_additive(self) -> None:
        driver = _driver('<set attributeName="visibility" to="visible" additive="sum"/>')
        self.assertEqual(driver.calc_mode, "discrete")
        self.assertFalse(driver.additive)
        self.assertEqual(driver.attribute_value((0.3, 0), "hidden"), "visible")

    def test_animate_without_attribute_name_is_dropped(self) -> None:
        element = ET.fromstring('<animate from="0" to="1" dur="1s"/>')
        self.assertIsNone(build_driver(element, ET.Element("rect"), 0, lambda _id: None))

    def test_animate_transform_rotation(self) -> None:
        driver = _driver('<animateTransform attributeName="transform" type="rotate" from="0 5 5" to="90 5 5" dur="1s"/>')
        self.assertTrue(np.allclose(driver.transform_value((0.5, 0)), mx.rotate(45, 5, 5)))

    def test_animate_transform_scale_defaults_sy(self) -> None:
        driver = _driver('<animateTransform attributeName="transform" type="scale" values="1;3" dur="1s"/>')
        self.assertTrue(np.allclose(driver.transform_value((0.5, 0)), mx.scale(2, 2)))

    def test_animate_motion_along_path_with_auto_rotate(self) -> None:
        driver = _driver('<animateMotion path="M0 0 L0 100" rotate="auto" dur="1s"/>', "circle")
        m = driver.motion_value((0.25, 0))
        self.assertTrue(np.allclose(m, mx.translate(0, 25) @ mx.rotate(90)))

    def test_animate_motion_from_values(self) -> None:
        driver = _driver('<animateMotion values="0,0; 10,20" calcMode="linear" dur="1s"/>', "circle")
        self.assertTrue(np.allclose(driver.motion_value((0.5, 0)), mx.translate(5, 10)))


if __name__ == "__main__":
    unittest.main()
