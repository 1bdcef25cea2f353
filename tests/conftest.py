# -*- coding: utf-8 -*-
"""
Shared fixtures - Synthetic low-rank textures seen through known transforms.

The texture is a smooth checkerboard ``0.5 + 0.4 s(x) s(y)`` with
``s(t) = tanh(2 sin(2 pi t / period))``, which is rank 2 when sampled on a
frontal grid. ``render_texture`` images it through a known patch-to-input
transform so tests can compare the recovered transform with the truth.

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

from tiltrect.geometry import apply_transform_to_points

PERIOD = 16.0


def checkerboard(x, y, period=PERIOD):
    """Rank-2 smooth checkerboard in frontal coordinates."""
    def s(t):
        return np.tanh(2.0 * np.sin(2.0 * np.pi * t / period))
    return 0.5 + 0.4 * s(x) * s(y)


def render(shape, center, transform=None, period=PERIOD):
    """Image of the checkerboard seen through *transform*.

    *transform* maps frontal ``(x, y)`` to centered input ``(u, v)``; the
    input origin sits at pixel *center* ``(x, y)``.
    """
    if transform is None:
        transform = np.eye(3)
    rows, cols = shape
    r, c = np.mgrid[0:rows, 0:cols].astype(np.float64)
    pts = np.stack([(c - center[0]).ravel(), (r - center[1]).ravel()], axis=1)
    frontal = apply_transform_to_points(pts, np.linalg.inv(transform))
    return checkerboard(frontal[:, 0], frontal[:, 1], period).reshape(shape)


def rotation(degrees, h31=0.0, h32=0.0):
    """Rotation about the input origin with an optional projective row."""
    t = np.deg2rad(degrees)
    return np.array([
        [np.cos(t), -np.sin(t), 0.0],
        [np.sin(t), np.cos(t), 0.0],
        [h31, h32, 1.0],
    ])


@pytest.fixture
def frontal_image():
    """112x112 frontal checkerboard centered at pixel (56, 56)."""
    return render((112, 112), (56, 56))


@pytest.fixture
def rotated_image():
    """Checkerboard rotated by 5 degrees, and the true transform."""
    truth = rotation(5.0)
    return render((112, 112), (56, 56), truth), truth


@pytest.fixture
def texture_renderer():
    """Expose ``render`` and ``rotation`` to tests."""
    return render, rotation
