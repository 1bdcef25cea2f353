# -*- coding: utf-8 -*-
"""
Tests for the geometry module.

Covers the output window coordinate systems, transform parameterizations,
warping and derivative images, the Jacobian/constraint builder (checked
against finite differences of the warp) and homography estimation.

License
-------
MIT License
Copyright (c) 2024 geoint.org
See LICENSE file for full text.

Created
-------
2026-10-18

Modified
--------
2026-10-18
"""

import numpy as np
import pytest

from tiltrect.exceptions import ValidationError
from tiltrect.geometry import (
    OutputWindow,
    apply_transform_to_points,
    build_constraints,
    build_jacobian,
    build_sensitivity,
    estimate_homography,
    get_model,
    image_gradients,
    matrix_to_parameters,
    parameter_count,
    parameters_to_matrix,
    warp_image,
)
from tiltrect.vocabulary import TransformFamily


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def smooth_image():
    """101x101 smooth image with slowly varying structure in both axes."""
    r, c = np.mgrid[0:101, 0:101].astype(np.float64)
    return (np.sin(2 * np.pi * c / 80.0) * np.cos(2 * np.pi * r / 100.0)
            + 0.01 * c + 2.0)


@pytest.fixture
def ramp_image():
    """60x80 linear ramp with a unique value per pixel."""
    r, c = np.mgrid[0:60, 0:80].astype(np.float64)
    return 100.0 * r + c


def _rotation_homography(theta, h31=0.0, h32=0.0):
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s, 0.5], [s, c, -0.3], [h31, h32, 1.0]])


# ---------------------------------------------------------------------------
# OutputWindow
# ---------------------------------------------------------------------------

class TestOutputWindow:

    def test_data_ranges(self):
        window = OutputWindow((100, 120), (60, 50), (30, 41))
        assert window.u_data == (-60, 59)
        assert window.v_data == (-50, 49)
        assert window.x_data == (-20, 20)
        assert window.y_data == (-14, 15)
        assert window.width == 40
        assert window.height == 29

    def test_fractional_inputs_floored(self):
        window = OutputWindow((50, 50), (10.7, 20.2), (9.9, 8.1))
        assert window.center == (10, 20)
        assert window.focus_size == (9, 8)

    def test_grid_shape_and_origin(self):
        window = OutputWindow((50, 50), (25, 25), (5, 7))
        x, y = window.grid()
        assert x.shape == (5, 7)
        assert x[0, 0] == -3 and x[0, -1] == 3
        assert y[0, 0] == -2 and y[-1, 0] == 2

    def test_corners_clockwise(self):
        window = OutputWindow((50, 50), (25, 25), (5, 7))
        np.testing.assert_array_equal(
            window.corners(),
            [[-3, -2], [3, -2], [3, 2], [-3, 2]],
        )

    def test_coordinate_conversions(self):
        window = OutputWindow((100, 120), (60, 50), (30, 41))
        rows, cols = window.to_array_index(np.array(0.0), np.array(0.0))
        assert float(rows) == 50.0
        assert float(cols) == 60.0
        pts = np.array([[60.0, 50.0], [0.0, 0.0]])
        np.testing.assert_allclose(window.to_centered(pts),
                                   [[0, 0], [-60, -50]])
        np.testing.assert_allclose(window.to_pixels(window.to_centered(pts)),
                                   pts)

    def test_empty_focus_rejected(self):
        with pytest.raises(ValidationError, match='non-empty'):
            OutputWindow((50, 50), (25, 25), (0, 10))

    def test_center_outside_rejected(self):
        with pytest.raises(ValidationError, match='outside'):
            OutputWindow((50, 50), (60, 25), (10, 10))

    def test_equality(self):
        a = OutputWindow((50, 50), (25, 25), (10, 10))
        assert a == OutputWindow((50, 50), (25.5, 25), (10, 10))
        assert a != OutputWindow((50, 50), (24, 25), (10, 10))
        assert 'focus_size=(10, 10)' in repr(a)


# ---------------------------------------------------------------------------
# Transform parameterizations
# ---------------------------------------------------------------------------

class TestTransforms:

    @pytest.mark.parametrize('family, count', [
        ('euclidean', 3),
        ('affine_notranslation', 6),
        (TransformFamily.HOMOGRAPHY, 8),
    ])
    def test_parameter_count(self, family, count):
        assert parameter_count(family) == count

    def test_euclidean_matrix(self):
        T = parameters_to_matrix([np.pi / 2, 3.0, -1.0], 'euclidean')
        np.testing.assert_allclose(
            T, [[0, -1, 3], [1, 0, -1], [0, 0, 1]], atol=1e-12
        )
        np.testing.assert_allclose(
            matrix_to_parameters(T, 'euclidean'), [np.pi / 2, 3.0, -1.0]
        )

    def test_affine_matches_matrix_layout(self):
        tau = np.array([1.1, 0.2, -0.1, 0.9, 4.0, 5.0])
        T = parameters_to_matrix(tau, 'affine')
        np.testing.assert_allclose(
            T, [[1.1, 0.2, 4.0], [-0.1, 0.9, 5.0], [0, 0, 1]]
        )
        np.testing.assert_allclose(matrix_to_parameters(T, 'affine'), tau)

    def test_homography_normalized(self):
        H = _rotation_homography(0.2, 1e-3, -2e-3)
        tau = matrix_to_parameters(3.0 * H, 'homography')
        assert tau.shape == (8,)
        np.testing.assert_allclose(parameters_to_matrix(tau, 'homography'), H)

    def test_affine_drops_projective_row(self):
        H = _rotation_homography(0.1, 1e-3, 0.0)
        T = parameters_to_matrix(matrix_to_parameters(H, 'affine'), 'affine')
        np.testing.assert_allclose(T[2], [0, 0, 1])
        np.testing.assert_allclose(T[:2], H[:2])

    def test_wrong_parameter_length(self):
        with pytest.raises(ValidationError, match='expects 6 parameters'):
            parameters_to_matrix(np.zeros(5), 'affine')

    @pytest.mark.parametrize('matrix', [
        np.eye(2),
        np.array([[1, 0, 0], [0, 1, 0], [0, 0, 0]], dtype=float),
        np.array([[np.nan, 0, 0], [0, 1, 0], [0, 0, 1]]),
    ])
    def test_invalid_matrix(self, matrix):
        with pytest.raises(ValidationError):
            matrix_to_parameters(matrix, 'homography')

    def test_point_jacobian_matches_finite_difference(self):
        model = get_model('homography')
        tau = matrix_to_parameters(_rotation_homography(0.3, 2e-3, 1e-3),
                                   'homography')
        x = np.array([-5.0, 0.0, 7.0])
        y = np.array([3.0, -4.0, 6.0])
        _, _, du, dv = model.point_jacobian(tau, x, y)
        eps = 1e-7
        for k in range(8):
            step = np.zeros(8)
            step[k] = eps
            up, vp, _, _ = model.point_jacobian(tau + step, x, y)
            um, vm, _, _ = model.point_jacobian(tau - step, x, y)
            np.testing.assert_allclose(du[:, k], (up - um) / (2 * eps),
                                       rtol=1e-5, atol=1e-6)
            np.testing.assert_allclose(dv[:, k], (vp - vm) / (2 * eps),
                                       rtol=1e-5, atol=1e-6)


class TestApplyTransformToPoints:

    def test_identity(self):
        pts = np.array([[10.0, 20.0], [30.0, 40.0]])
        np.testing.assert_allclose(apply_transform_to_points(pts, np.eye(3)),
                                   pts)

    def test_projective_division(self):
        H = np.array([[2.0, 0, 0], [0, 2.0, 0], [0, 0, 2.0]])
        pts = np.array([[3.0, -4.0]])
        np.testing.assert_allclose(apply_transform_to_points(pts, H), pts)

    def test_bad_matrix(self):
        with pytest.raises(ValidationError):
            apply_transform_to_points(np.zeros((1, 2)), np.eye(2))


# ---------------------------------------------------------------------------
# Warping
# ---------------------------------------------------------------------------

class TestWarpImage:

    def test_identity_is_crop(self, ramp_image):
        window = OutputWindow(ramp_image.shape, (40, 30), (11, 15))
        patch = warp_image(ramp_image, np.eye(3), window)
        r0 = 30 + window.y_data[0]
        c0 = 40 + window.x_data[0]
        np.testing.assert_allclose(patch, ramp_image[r0:r0 + 11, c0:c0 + 15])

    def test_integer_translation(self, ramp_image):
        window = OutputWindow(ramp_image.shape, (40, 30), (5, 5))
        T = np.array([[1.0, 0, 3], [0, 1.0, -2], [0, 0, 1]])
        patch = warp_image(ramp_image, T, window)
        np.testing.assert_allclose(patch, ramp_image[26:31, 41:46])

    def test_bilinear_half_pixel(self, ramp_image):
        window = OutputWindow(ramp_image.shape, (40, 30), (3, 3))
        T = np.array([[1.0, 0, 0.5], [0, 1.0, 0.5], [0, 0, 1]])
        patch = warp_image(ramp_image, T, window)
        # the ramp is linear, so bilinear sampling is exact
        np.testing.assert_allclose(patch[1, 1], 100.0 * 30.5 + 40.5)

    def test_outside_is_filled(self, ramp_image):
        window = OutputWindow(ramp_image.shape, (0, 0), (5, 5))
        patch = warp_image(ramp_image, np.eye(3), window, fill_value=-1.0)
        assert patch[0, 0] == -1.0
        assert patch[2, 2] == ramp_image[0, 0]

    def test_shape_mismatch(self, ramp_image):
        window = OutputWindow((10, 10), (5, 5), (3, 3))
        with pytest.raises(ValidationError, match='does not match'):
            warp_image(ramp_image, np.eye(3), window)

    def test_not_2d(self):
        window = OutputWindow((10, 10), (5, 5), (3, 3))
        with pytest.raises(ValidationError):
            warp_image(np.zeros((10, 10, 3)), np.eye(3), window)


class TestImageGradients:

    def test_linear_ramp(self):
        r, c = np.mgrid[0:20, 0:30].astype(np.float64)
        du, dv = image_gradients(2.0 * c + 3.0 * r)
        np.testing.assert_allclose(du[1:-1, 1:-1], 2.0)
        np.testing.assert_allclose(dv[1:-1, 1:-1], 3.0)

    def test_constant_image_has_no_gradient(self):
        du, dv = image_gradients(np.full((8, 8), 5.0))
        assert not np.any(du)
        assert not np.any(dv)

    def test_rejects_color(self):
        with pytest.raises(ValidationError):
            image_gradients(np.zeros((4, 4, 3)))


# ---------------------------------------------------------------------------
# Sensitivity model
# ---------------------------------------------------------------------------

def _warp_normalized(image, tau, family, window, normalize):
    patch = warp_image(image, parameters_to_matrix(tau, family), window)
    if normalize:
        patch = patch / np.linalg.norm(patch)
    return patch.ravel()


class TestBuildJacobian:

    @pytest.mark.parametrize('family, T', [
        ('euclidean', np.array([[np.cos(0.1), -np.sin(0.1), 1.0],
                                [np.sin(0.1), np.cos(0.1), -0.5],
                                [0, 0, 1]])),
        ('affine', np.array([[1.05, 0.1, 0.3], [-0.05, 0.95, 0.2],
                             [0, 0, 1]])),
        ('homography', _rotation_homography(0.1, 1e-3, -1e-3)),
    ])
    @pytest.mark.parametrize('normalize', [False, True])
    def test_matches_finite_difference(self, smooth_image, family, T,
                                       normalize):
        window = OutputWindow(smooth_image.shape, (50, 50), (31, 31))
        tau = matrix_to_parameters(T, family)
        du_img, dv_img = image_gradients(smooth_image)
        du = warp_image(du_img, T, window)
        dv = warp_image(dv_img, T, window)
        patch = warp_image(smooth_image, T, window)
        J = build_jacobian(du, dv, window, tau, family,
                           patch=patch if normalize else None)
        assert J.shape == (31 * 31, parameter_count(family))

        # parameter steps moving the patch corners by about 0.01 px
        _, _, du_dtau, dv_dtau = get_model(family).point_jacobian(
            tau, window.corners()[:, 0], window.corners()[:, 1]
        )
        reach = np.abs(du_dtau).max(axis=0) + np.abs(dv_dtau).max(axis=0)
        for k in range(J.shape[1]):
            eps = 1e-2 / reach[k]
            step = np.zeros_like(tau)
            step[k] = eps
            fd = (_warp_normalized(smooth_image, tau + step, family, window,
                                   normalize)
                  - _warp_normalized(smooth_image, tau - step, family, window,
                                     normalize)) / (2 * eps)
            err = np.linalg.norm(J[:, k] - fd) / np.linalg.norm(fd)
            assert err < 0.1, (family, k, err)

    def test_normalized_columns_orthogonal_to_patch(self, smooth_image):
        window = OutputWindow(smooth_image.shape, (50, 50), (21, 21))
        du_img, dv_img = image_gradients(smooth_image)
        T = np.eye(3)
        du = warp_image(du_img, T, window)
        dv = warp_image(dv_img, T, window)
        patch = warp_image(smooth_image, T, window)
        tau = matrix_to_parameters(T, 'affine')
        J = build_jacobian(du, dv, window, tau, 'affine', patch=patch)
        np.testing.assert_allclose(patch.ravel() @ J, 0.0, atol=1e-10)

    def test_shape_mismatch(self):
        window = OutputWindow((50, 50), (25, 25), (10, 10))
        with pytest.raises(ValidationError, match='focus size'):
            build_jacobian(np.zeros((9, 10)), np.zeros((9, 10)), window,
                           np.zeros(3), 'euclidean')


class TestBuildConstraints:

    def test_euclidean_has_no_gauge_rows(self):
        window = OutputWindow((50, 50), (25, 25), (11, 11))
        S = build_constraints(window, np.zeros(3), 'euclidean')
        assert S.shape == (0, 3)

    def test_translation_rows(self):
        window = OutputWindow((50, 50), (25, 25), (11, 11))
        S = build_constraints(window, np.zeros(3), 'euclidean_notranslation')
        np.testing.assert_allclose(S, [[0, 1, 0], [0, 0, 1]])

    def test_affine_identity_fixes_axis_scales(self):
        window = OutputWindow((50, 50), (25, 25), (11, 11))
        tau = matrix_to_parameters(np.eye(3), 'affine')
        S = build_constraints(window, tau, 'affine')
        np.testing.assert_allclose(
            S, [[1, 0, 0, 0, 0, 0], [0, 0, 0, 1, 0, 0]], atol=1e-12
        )
        rotation = np.array([0.0, -1.0, 1.0, 0.0, 0.0, 0.0])
        np.testing.assert_allclose(S @ rotation, 0.0, atol=1e-12)

    @pytest.mark.parametrize('family, rows', [
        ('affine', 2),
        ('affine_notranslation', 4),
        ('homography', 2),
        ('homography_notranslation', 4),
    ])
    def test_shapes_and_unit_rows(self, family, rows):
        window = OutputWindow((80, 80), (40, 40), (21, 31))
        tau = matrix_to_parameters(_rotation_homography(0.2, 1e-3, 2e-3),
                                   family)
        S = build_constraints(window, tau, family)
        assert S.shape == (rows, parameter_count(family))
        np.testing.assert_allclose(np.linalg.norm(S, axis=1), 1.0)

    @pytest.mark.parametrize('family', ['affine', 'homography'])
    def test_translation_is_free_without_variant(self, family):
        window = OutputWindow((80, 80), (40, 40), (21, 31))
        tau = matrix_to_parameters(_rotation_homography(0.2), family)
        S = build_constraints(window, tau, family)
        model = get_model(family)
        for idx in model.translation_indices:
            np.testing.assert_allclose(S[:, idx], 0.0, atol=1e-12)

    def test_build_sensitivity_pairs(self, smooth_image):
        window = OutputWindow(smooth_image.shape, (50, 50), (15, 15))
        du_img, dv_img = image_gradients(smooth_image)
        du = warp_image(du_img, np.eye(3), window)
        dv = warp_image(dv_img, np.eye(3), window)
        J, S = build_sensitivity(du, dv, window, np.array([0.0, 0.0, 0.0]),
                                 'euclidean_notranslation')
        assert J.shape == (225, 3)
        assert S.shape == (2, 3)


# ---------------------------------------------------------------------------
# Homography estimation
# ---------------------------------------------------------------------------

class TestEstimateHomography:

    def test_recovers_known_homography(self):
        H = _rotation_homography(0.25, 1e-3, -5e-4)
        src = np.array([[-20, -10], [20, -10], [20, 10], [-20, 10]],
                       dtype=np.float64)
        dst = apply_transform_to_points(src, H)
        H_est = estimate_homography(src, dst)
        np.testing.assert_allclose(H_est, H / H[2, 2], atol=1e-8)

    def test_overdetermined(self):
        rng = np.random.default_rng(7)
        H = _rotation_homography(-0.4, 2e-3, 1e-3)
        src = rng.uniform(-50, 50, size=(12, 2))
        dst = apply_transform_to_points(src, H)
        np.testing.assert_allclose(
            apply_transform_to_points(src, estimate_homography(src, dst)),
            dst, atol=1e-6,
        )

    def test_too_few_points(self):
        pts = np.zeros((3, 2))
        with pytest.raises(ValidationError, match='at least 4'):
            estimate_homography(pts, pts)

    def test_shape_mismatch(self):
        with pytest.raises(ValidationError, match='same shape'):
            estimate_homography(np.zeros((4, 2)), np.zeros((5, 2)))
