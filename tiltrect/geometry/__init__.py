# -*- coding: utf-8 -*-
"""
Geometry Module - Coordinate windows, transform models, warping and sensitivities.

Provides the collaborators the refinement loop is built on: the patch and
input coordinate systems, the parameterization of each transform family,
bilinear projective warping, the Jacobian/constraint builder and
homography estimation from point correspondences.

Key Classes
-----------
- OutputWindow: origin and extent of the input image and the patch
- TransformModel: parameterization of one transform family

Dependencies
------------
scipy

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

from tiltrect.geometry.window import OutputWindow
from tiltrect.geometry.transforms import (
    TransformModel,
    apply_transform_to_points,
    get_model,
    matrix_to_parameters,
    parameter_count,
    parameters_to_matrix,
)
from tiltrect.geometry.warp import image_gradients, warp_image
from tiltrect.geometry.sensitivity import (
    build_constraints,
    build_jacobian,
    build_sensitivity,
)
from tiltrect.geometry.homography import estimate_homography

__all__ = [
    'OutputWindow',
    'TransformModel',
    'apply_transform_to_points',
    'get_model',
    'matrix_to_parameters',
    'parameter_count',
    'parameters_to_matrix',
    'image_gradients',
    'warp_image',
    'build_constraints',
    'build_jacobian',
    'build_sensitivity',
    'estimate_homography',
]
