import unittest

import numpy as np

from src.keypool.domain._errors import DimensionMismatchError
from src.keypool.infrastructure.ops.pool2d_cpu import (
    IndexMap,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)
from src.keypool.infrastructure.pooling._pooling_meta import PoolingConfig


def _exhaustive_max(x: np.ndarray, cfg: PoolingConfig, out_hw) -> np.ndarray:
    """Brute-force reference: slice every window and take its max."""
    N, C, H, W = x.shape
    H_out, W_out = out_hw
    ref = np.empty((N, C, H_out, W_out), dtype=x.dtype)
    for n in range(N):
        for c in range(C):
            for i in range(H_out):
                for j in range(W_out):
                    h0 = i * cfg.stride_height
                    w0 = j * cfg.stride_width
                    ref[n, c, i, j] = x[
                        n, c, h0 : h0 + cfg.kernel_height, w0 : w0 + cfg.kernel_width
                    ].max()
    return ref


class TestMaxPool2dForwardCpu(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(0)

    def test_four_by_four_scenario(self):
        x = np.arange(1, 17, dtype=np.float64).reshape(1, 1, 4, 4)
        cfg = PoolingConfig(2, 2, 2, 2)

        result = maxpool2d_forward_cpu(x, cfg)

        np.testing.assert_array_equal(result.output, [[[[6.0, 8.0], [14.0, 16.0]]]])
        # (1, 1), (1, 3), (3, 1), (3, 3) in a 4-wide plane.
        np.testing.assert_array_equal(result.index_map.indices, [[[[5, 7], [13, 15]]]])
        self.assertEqual(result.index_map.input_shape, (1, 1, 4, 4))
        self.assertEqual(result.index_map.indices.dtype, np.int64)

        grad_x = maxpool2d_backward_cpu(np.ones((1, 1, 2, 2)), result.index_map)
        expected = np.zeros((4, 4))
        expected[[1, 1, 3, 3], [1, 3, 1, 3]] = 1.0
        np.testing.assert_array_equal(grad_x[0, 0], expected)
        self.assertEqual(grad_x.sum(), 4.0)

    def test_output_matches_exhaustive_scan(self):
        cases = [
            # (x_shape, kernel_w, kernel_h, stride_w, stride_h)
            ((2, 3, 8, 8), 2, 2, 2, 2),
            ((1, 1, 7, 6), 2, 3, 2, 1),
            ((1, 4, 9, 5), 3, 2, 1, 2),
            ((3, 2, 5, 5), 3, 3, 1, 1),
        ]
        for x_shape, kw, kh, sw, sh in cases:
            with self.subTest(x_shape=x_shape, k=(kw, kh), s=(sw, sh)):
                cfg = PoolingConfig(kw, kh, sw, sh)
                x = self.rng.integers(-5, 5, size=x_shape).astype(np.float32)
                result = maxpool2d_forward_cpu(x, cfg)

                H_out = (x_shape[2] - kh) // sh + 1
                W_out = (x_shape[3] - kw) // sw + 1
                self.assertEqual(result.output.shape, x_shape[:2] + (H_out, W_out))
                np.testing.assert_array_equal(
                    result.output, _exhaustive_max(x, cfg, (H_out, W_out))
                )

    def test_index_map_points_at_output_values(self):
        x = self.rng.integers(0, 4, size=(2, 3, 6, 7)).astype(np.float64)
        cfg = PoolingConfig(3, 2, 2, 1)
        result = maxpool2d_forward_cpu(x, cfg)

        self.assertEqual(result.index_map.indices.shape, result.output.shape)
        np.testing.assert_array_equal(
            x.reshape(-1)[result.index_map.indices], result.output
        )

    def test_indices_are_offset_per_sample_and_channel(self):
        x = np.arange(2 * 3 * 4 * 4, dtype=np.float32).reshape(2, 3, 4, 4)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        # Plane (n=1, c=2) starts at (1 * 3 + 2) * 16 = 80; its first max is (1, 1).
        self.assertEqual(int(result.index_map.indices[1, 2, 0, 0]), 85)

    def test_forward_is_deterministic(self):
        x = self.rng.integers(0, 2, size=(2, 2, 6, 6)).astype(np.float32)
        cfg = PoolingConfig(3, 3, 1, 1)
        a = maxpool2d_forward_cpu(x, cfg)
        b = maxpool2d_forward_cpu(x, cfg)
        np.testing.assert_array_equal(a.output, b.output)
        np.testing.assert_array_equal(a.index_map.indices, b.index_map.indices)

    def test_kernel_width_acts_on_last_axis(self):
        x = np.arange(24, dtype=np.float32).reshape(1, 1, 4, 6)
        cfg = PoolingConfig(kernel_width=3, kernel_height=2, stride_width=3, stride_height=2)
        result = maxpool2d_forward_cpu(x, cfg)
        np.testing.assert_array_equal(result.output, [[[[8.0, 11.0], [20.0, 23.0]]]])

    def test_ceil_mode_clips_boundary_windows(self):
        x = np.arange(25, dtype=np.float32).reshape(1, 1, 5, 5)
        cfg = PoolingConfig(2, 2, 2, 2, rounding_mode="ceil")
        result = maxpool2d_forward_cpu(x, cfg)

        expected = np.array(
            [[6.0, 8.0, 9.0], [16.0, 18.0, 19.0], [21.0, 23.0, 24.0]], dtype=np.float32
        )
        np.testing.assert_array_equal(result.output[0, 0], expected)
        np.testing.assert_array_equal(
            x.reshape(-1)[result.index_map.indices], result.output
        )

    def test_without_indices(self):
        x = self.rng.normal(size=(1, 2, 4, 4))
        cfg = PoolingConfig(2, 2, 2, 2)
        plain = maxpool2d_forward_cpu(x, cfg, return_indices=False)
        tracked = maxpool2d_forward_cpu(x, cfg)
        self.assertIsNone(plain.index_map)
        np.testing.assert_array_equal(plain.output, tracked.output)

    def test_window_is_scanned_along_width_first(self):
        # Ties between (0, 1) and (1, 0) resolve to the cell further along W.
        x = np.array([[[[0.0, 5.0], [5.0, 0.0]]]])
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        self.assertEqual(int(result.index_map.indices[0, 0, 0, 0]), 1)

        # Non-square window: kernel 3 wide, 2 high, every cell tied.
        x = np.ones((1, 1, 2, 3))
        result = maxpool2d_forward_cpu(x, PoolingConfig(3, 2, 1, 1))
        self.assertEqual(int(result.index_map.indices[0, 0, 0, 0]), 0)

        # Only the second row holds the maximum; the first one along W wins.
        x = np.array([[[[0.0, 0.0, 0.0], [0.0, 4.0, 4.0]]]])
        result = maxpool2d_forward_cpu(x, PoolingConfig(3, 2, 1, 1))
        self.assertEqual(int(result.index_map.indices[0, 0, 0, 0]), 4)

    def test_ceil_clipped_window_decodes_to_its_own_cells(self):
        # The last column of windows is clipped to width 1.
        x = np.zeros((1, 1, 2, 3))
        x[0, 0, 1, 2] = 1.0
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2, "ceil"))
        self.assertEqual(result.output.shape, (1, 1, 1, 2))
        self.assertEqual(int(result.index_map.indices[0, 0, 0, 1]), 5)

    def test_preserves_integer_dtype(self):
        x = np.arange(16, dtype=np.int32).reshape(1, 1, 4, 4)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        self.assertEqual(result.output.dtype, np.int32)

    def test_custom_rule_is_used(self):
        class MinRule:
            def pool(self, window):
                return np.min(window)

            def pool_with_index(self, window):
                from src.keypool.infrastructure.pooling._pooling_rule import PoolResult

                scan = np.asarray(window).ravel(order="F")
                idx = int(np.argmin(scan))
                return PoolResult(value=scan[idx], index=idx)

        x = np.arange(1, 17, dtype=np.float64).reshape(1, 1, 4, 4)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2), rule=MinRule())
        np.testing.assert_array_equal(result.output, [[[[1.0, 3.0], [9.0, 11.0]]]])
        np.testing.assert_array_equal(result.index_map.indices, [[[[0, 2], [8, 10]]]])

    def test_rejects_non_4d_input(self):
        with self.assertRaises(DimensionMismatchError):
            maxpool2d_forward_cpu(np.zeros((4, 4)), PoolingConfig(2, 2))


class TestMaxPool2dBackwardCpu(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = np.random.default_rng(1)

    def test_gradient_mass_is_conserved(self):
        cases = [
            ((2, 3, 6, 6), PoolingConfig(2, 2, 2, 2)),  # non-overlapping
            ((2, 3, 6, 6), PoolingConfig(3, 3, 1, 1)),  # heavily overlapping
            ((1, 2, 7, 5), PoolingConfig(3, 2, 2, 1)),  # overlapping on one axis
            ((1, 1, 5, 5), PoolingConfig(2, 2, 2, 2, "ceil")),
        ]
        for x_shape, cfg in cases:
            with self.subTest(x_shape=x_shape, cfg=cfg):
                x = self.rng.normal(size=x_shape)
                result = maxpool2d_forward_cpu(x, cfg)
                grad_out = self.rng.normal(size=result.output.shape)

                grad_x = maxpool2d_backward_cpu(grad_out, result.index_map)

                self.assertEqual(grad_x.shape, x_shape)
                self.assertTrue(np.isclose(grad_x.sum(), grad_out.sum()))

    def test_overlapping_windows_accumulate(self):
        # The centre 9 wins all four 2x2 windows with stride 1.
        x = np.array([[[[1, 2, 1], [2, 9, 2], [1, 2, 1]]]], dtype=np.float64)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 1, 1))
        grad_x = maxpool2d_backward_cpu(
            np.array([[[[1.0, 2.0], [3.0, 4.0]]]]), result.index_map
        )
        expected = np.zeros((3, 3))
        expected[1, 1] = 10.0
        np.testing.assert_array_equal(grad_x[0, 0], expected)

    def test_non_overlap_touches_one_location_per_output(self):
        x = self.rng.permutation(4 * 6 * 2).astype(np.float64).reshape(1, 2, 4, 6)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        grad_out = 1.0 + self.rng.random(result.output.shape)

        grad_x = maxpool2d_backward_cpu(grad_out, result.index_map)

        self.assertEqual(np.count_nonzero(grad_x), result.output.size)
        np.testing.assert_array_equal(
            grad_x.reshape(-1)[result.index_map.indices], grad_out
        )

    def test_disjoint_windows_assignment_matches_scatter_add(self):
        cases = [
            ((2, 3, 6, 6), PoolingConfig(2, 2, 2, 2)),
            ((1, 2, 7, 8), PoolingConfig(2, 3, 3, 3)),
            ((1, 1, 5, 5), PoolingConfig(2, 2, 2, 2, "ceil")),
        ]
        for x_shape, cfg in cases:
            with self.subTest(x_shape=x_shape, cfg=cfg):
                self.assertFalse(cfg.overlapping)
                x = self.rng.normal(size=x_shape)
                result = maxpool2d_forward_cpu(x, cfg)
                grad_out = self.rng.normal(size=result.output.shape)

                fast = maxpool2d_backward_cpu(
                    grad_out, result.index_map, overlapping=cfg.overlapping
                )
                scatter = maxpool2d_backward_cpu(grad_out, result.index_map)

                np.testing.assert_array_equal(fast, scatter)

    def test_tie_routes_to_first_max_along_width(self):
        x = np.array([[[[1.0, 5.0], [5.0, 1.0]]]], dtype=np.float32)
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        grad_x = maxpool2d_backward_cpu(np.array([[[[7.0]]]], dtype=np.float32), result.index_map)
        expected = np.array([[[[0.0, 7.0], [0.0, 0.0]]]], dtype=np.float32)
        np.testing.assert_array_equal(grad_x, expected)
        self.assertEqual(grad_x.dtype, np.float32)

    def test_rejects_gradient_of_wrong_shape(self):
        x = np.zeros((1, 1, 4, 4))
        result = maxpool2d_forward_cpu(x, PoolingConfig(2, 2, 2, 2))
        with self.assertRaises(DimensionMismatchError) as ctx:
            maxpool2d_backward_cpu(np.ones((1, 1, 3, 3)), result.index_map)
        self.assertEqual(ctx.exception.expected, (1, 1, 2, 2))
        self.assertEqual(ctx.exception.actual, (1, 1, 3, 3))

    def test_rejects_stale_index_map(self):
        index_map = IndexMap(
            indices=np.zeros((1, 1, 2, 2), dtype=np.int64), input_shape=(1, 1, 4, 4)
        )
        with self.assertRaises(DimensionMismatchError):
            maxpool2d_backward_cpu(
                np.ones((1, 1, 2, 2)), index_map, x_shape=(1, 1, 5, 5)
            )


if __name__ == "__main__":
    unittest.main()
