from __future__ import annotations

import unittest

from svgrender_core.scene.paths import (
    ellipse_outline,
    parse_path_data,
    point_at_fraction,
    point_list,
    polyline_length,
    rect_outline,
)


class PathDataTests(unittest.TestCase):
    def test_absolute_lines_and_close(self) -> None:
        subpaths = parse_path_data("M0 0 L10 0 L10 10 Z")
        self.assertEqual(len(subpaths), 1)
        self.assertTrue(subpaths[0].closed)
        self.assertEqual(subpaths[0].points, [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0)])

    def test_relative_commands(self) -> None:
        subpaths = parse_path_data("m 5 5 l 10 0 v 10 h -10 z")
        self.assertEqual(subpaths[0].points, [(5.0, 5.0), (15.0, 5.0), (15.0, 15.0), (5.0, 15.0)])
        self.assertTrue(subpaths[0].closed)

    def test_moveto_pairs_continue_as_lineto(self) -> None:
        subpaths = parse_path_data("M0 0 10 0 10 10")
        self.assertEqual(subpaths[0].points, [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0)])

    def test_curves_end_on_their_endpoint(self) -> None:
        cubic = parse_path_data("M0 0 C 0 10 10 10 10 0")[0].points
        self.assertAlmostEqual(cubic[-1][0], 10.0)
        self.assertAlmostEqual(cubic[-1][1], 0.0)
        arc = parse_path_data("M0 0 A 5 5 0 0 1 10 0")[0].points
        self.assertAlmostEqual(arc[-1][0], 10.0)
        self.assertAlmostEqual(arc[-1][1], 0.0)
        # Sweep flag 1 bulges towards negative y in SVG's y-down frame.
        self.assertLess(min(y for _, y in arc), -4.9)

    def test_malformed_data_stops_at_first_bad_segment(self) -> None:
        self.assertEqual(parse_path_data("M0 0 L10"), [])
        self.assertEqual(len(parse_path_data("M0 0 L 10 0 Z 5")), 1)
        self.assertEqual(parse_path_data("none"), [])

    def test_two_subpaths(self) -> None:
        subpaths = parse_path_data("M0 0 H20 V20 H0 Z M5 5 H15 V15 H5 Z")
        self.assertEqual(len(subpaths), 2)
        self.assertEqual(subpaths[1].points[0], (5.0, 5.0))


class ShapeOutlineTests(unittest.TestCase):
    def test_rect_outline(self) -> None:
        self.assertEqual(rect_outline(0, 0, 10, 5)[0].points, [(0, 0), (10, 0), (10, 5), (0, 5)])
        self.assertEqual(rect_outline(0, 0, 0, 5), [])
        rounded = rect_outline(0, 0, 10, 10, 2, 2)[0].points
        self.assertGreater(len(rounded), 4)

    def test_ellipse_and_point_list(self) -> None:
        self.assertEqual(ellipse_outline(0, 0, 0, 3), [])
        circle = ellipse_outline(5, 5, 2, 2)[0]
        self.assertTrue(circle.closed)
        self.assertAlmostEqual(circle.points[0][0], 7.0)
        self.assertEqual(point_list("0,0 4,0 4,4", closed=True)[0].points, [(0.0, 0.0), (4.0, 0.0), (4.0, 4.0)])
        self.assertEqual(point_list("1,1", closed=False), [])

    def test_point_at_fraction_walks_arc_length(self) -> None:
        points = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0)]
        self.assertEqual(polyline_length(points), 20.0)
        x, y, angle = point_at_fraction(points, 0.75)
        self.assertAlmostEqual(x, 10.0)
        self.assertAlmostEqual(y, 5.0)
        self.assertAlmostEqual(angle, 90.0)


if __name__ == "__main__":
    unittest.main()
