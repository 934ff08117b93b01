"""Tests for the sliding-window planarity stage."""

import numpy as np
import pytest

from conftest import RES
from plane_fit import UNDEFINED_ERROR
from planarity import (colorize_labels, compute_window_normals, erode_mask, inclination_deg,
                       label_regions, locally_planar_mask, window_statistics)

class TestWindowNormals:
    def test_flat_window(self):
        normals, errors = compute_window_normals(np.full((5, 5), 0.7), RES, 3)
        assert np.all(errors < 1e-6)
        np.testing.assert_allclose(normals.reshape(-1, 3), np.tile([0.0, 0.0, 1.0], (25, 1)), atol=1e-9)

    def test_two_valid_samples_are_undefined(self):
        h = np.full((5, 5), np.nan)
        h[2, 2] = 1.0
        h[2, 3] = 1.2
        normals, errors = compute_window_normals(h, RES, 3)
        assert errors[2, 2] == UNDEFINED_ERROR
        assert np.array_equal(normals[2, 2], [0.0, 0.0, 1.0])
        # cells without data keep the defaults too
        assert errors[0, 0] == UNDEFINED_ERROR
        assert np.array_equal(normals[0, 0], [0.0, 0.0, 1.0])

    def test_window_statistics_skip_outside_and_nan(self):
        h = np.ones((4, 4))
        h[1, 1] = np.nan
        counts, sums, _ = window_statistics(h, RES, 3)
        assert counts[0, 0] == 3      # corner: 4 inside, one nan
        assert counts[2, 2] == 8
        assert counts[3, 3] == 4
        assert sums[2, 2, 2] == pytest.approx(8.0)

    def test_window_statistics_match_per_window_sums(self):
        rng = np.random.default_rng(1)
        h = rng.normal(size=(6, 7))
        h[rng.random((6, 7)) < 0.2] = np.nan
        k, half = 5, 2
        counts, sums, sums_squared = window_statistics(h, RES, k)
        for r in range(6):
            for c in range(7):
                pts = []
                for kr in range(k):
                    for kc in range(k):
                        rr, cc = r + kr - half, c + kc - half
                        if 0 <= rr < 6 and 0 <= cc < 7 and np.isfinite(h[rr, cc]):
                            pts.append((-kr * RES, -kc * RES, h[rr, cc]))
                pts = np.array(pts).reshape(-1, 3)
                assert counts[r, c] == len(pts)
                np.testing.assert_allclose(sums[r, c], pts.sum(axis=0), atol=1e-12)
                np.testing.assert_allclose(sums_squared[r, c], pts.T @ pts, atol=1e-12)

    def test_sloped_plane(self):
        cols = np.arange(8, dtype=np.float64)
        h = np.tile(0.1 * RES * cols, (8, 1))
        normals, errors = compute_window_normals(h, RES, 5)
        assert np.all(normals[..., 2] >= 0.0)
        np.testing.assert_allclose(inclination_deg(normals), np.degrees(np.arctan(0.1)), atol=1e-6)
        assert np.all(errors < 1e-6)

    def test_writes_into_buffer(self):
        buf = np.zeros((3, 3, 3))
        normals, _ = compute_window_normals(np.ones((3, 3)), RES, 3, out_normals=buf)
        assert normals is buf
        assert np.allclose(buf[..., 2], 1.0)

class TestLocalPlanarity:
    def test_thresholds(self):
        tilt = np.radians(20.0)
        normals = np.array([[[0.0, 0.0, 1.0], [np.sin(tilt), 0.0, np.cos(tilt)], [0.0, 0.0, 1.0]]])
        errors = np.array([[0.001, 0.001, 0.05]])
        mask = locally_planar_mask(normals, errors, 0.01, 15.0)
        assert mask.dtype == np.uint8
        assert mask.tolist() == [[1, 0, 0]]

    def test_undefined_always_rejected(self):
        mask = locally_planar_mask(np.array([[[0.0, 0.0, 1.0]]]), np.array([[UNDEFINED_ERROR]]), 1e6, 90.0)
        assert mask[0, 0] == 0

class TestErosion:
    def test_zero_radius_is_noop(self):
        mask = np.ones((5, 5), np.uint8)
        assert erode_mask(mask, 0) is mask

    def test_cross_kernel(self):
        mask = np.ones((5, 5), np.uint8)
        mask[2, 2] = 0
        eroded = erode_mask(mask, 1)
        expected = np.ones((5, 5), np.uint8)
        for r, c in [(2, 2), (1, 2), (3, 2), (2, 1), (2, 3)]:
            expected[r, c] = 0
        assert np.array_equal(eroded, expected)

    def test_breaks_single_pixel_bridge(self):
        mask = np.zeros((5, 9), np.uint8)
        mask[:, :4] = 1
        mask[:, 5:] = 1
        mask[2, 4] = 1
        _, before = label_regions(mask)
        _, after = label_regions(erode_mask(mask, 1))
        assert before == 1
        assert after == 2

class TestLabeling:
    def test_connectivity(self):
        mask = np.array([[1, 0], [0, 1]], np.uint8)
        labeled4, n4 = label_regions(mask, 4)
        _, n8 = label_regions(mask, 8)
        assert n4 == 2 and n8 == 1
        assert labeled4.dtype == np.int32
        assert labeled4[0, 1] == 0

    def test_empty_mask(self):
        labeled, n = label_regions(np.zeros((3, 3), np.uint8))
        assert n == 0
        assert not labeled.any()

def test_colorize_labels():
    labeled = np.array([[0, 1], [2, 0]], np.int32)
    vis = colorize_labels(labeled)
    assert vis.shape == (2, 2, 3)
    assert not vis[0, 0].any() and not vis[1, 1].any()
    assert vis[0, 1].any()
