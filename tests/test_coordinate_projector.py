#!/usr/bin/env python3
"""Tests for the camera-to-surface projection."""

import math
import sys
from pathlib import Path

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.color_mapper import DEFAULT_COLOR_INTRINSICS, UNMAPPABLE, PinholeColorMapper
from backend.coordinate_projector import (
    REFERENCE_HEIGHT,
    REFERENCE_WIDTH,
    CoordinateProjector,
    SurfaceConfig,
    is_mappable,
    mappable_points,
    rescale_to_surface,
    unmappable_joints,
)
from backend.skeleton_adapter import ALL_JOINTS, JointType, build_joint_frame
from main import standing_pose


def _orthographic_mapper(points):
    return [(960.0 + 100.0 * x, 540.0 - 100.0 * y) for x, y, _z in points]


def _mapper_dropping(joint_type):
    index = ALL_JOINTS.index(joint_type)

    def mapper(points):
        mapped = _orthographic_mapper(points)
        mapped[index] = UNMAPPABLE
        return mapped

    return mapper


# ---------------------------------------------------------------------------
# Surface rescaling
# ---------------------------------------------------------------------------

class TestRescale:
    def test_reference_corners_map_to_surface_corners(self):
        surface = SurfaceConfig(width=16.0, height=9.0)
        assert rescale_to_surface((0.0, 0.0), surface) == pytest.approx((-8.0, 4.5))
        assert rescale_to_surface((REFERENCE_WIDTH, REFERENCE_HEIGHT), surface) == pytest.approx((8.0, -4.5))
        assert rescale_to_surface((960.0, 540.0), surface) == pytest.approx((0.0, 0.0))

    def test_surface_center_offsets_result(self):
        surface = SurfaceConfig(width=16.0, height=9.0, center_x=2.0, center_y=-1.0)
        assert rescale_to_surface((960.0, 540.0), surface) == pytest.approx((2.0, -1.0))

    def test_infinite_input_stays_unmappable(self):
        surface = SurfaceConfig(width=16.0, height=9.0)
        assert not is_mappable(rescale_to_surface(UNMAPPABLE, surface))

    @pytest.mark.parametrize("width,height", [(0.0, 9.0), (16.0, -1.0)])
    def test_surface_size_must_be_positive(self, width, height):
        with pytest.raises(ValueError):
            SurfaceConfig(width=width, height=height)


# ---------------------------------------------------------------------------
# Projector
# ---------------------------------------------------------------------------

class TestCoordinateProjector:
    def test_projects_every_joint(self):
        frame = build_joint_frame(standing_pose())
        projected = CoordinateProjector(_orthographic_mapper).project(
            frame, SurfaceConfig(width=REFERENCE_WIDTH, height=REFERENCE_HEIGHT)
        )
        assert set(projected) == set(ALL_JOINTS)
        assert projected[JointType.HEAD] == pytest.approx((0.0, 68.0))
        assert projected[JointType.SHOULDER_RIGHT] == pytest.approx((18.0, 43.0))
        assert unmappable_joints(projected) == ()

    def test_unmappable_joint_carries_infinity(self):
        frame = build_joint_frame(standing_pose())
        projected = CoordinateProjector(_mapper_dropping(JointType.ELBOW_RIGHT)).project(
            frame, SurfaceConfig(width=16.0, height=9.0)
        )
        assert any(math.isinf(value) for value in projected[JointType.ELBOW_RIGHT])
        assert unmappable_joints(projected) == (JointType.ELBOW_RIGHT,)
        markers = mappable_points(projected)
        assert JointType.ELBOW_RIGHT not in markers
        assert len(markers) == len(ALL_JOINTS) - 1

    def test_mapper_returning_wrong_count(self):
        frame = build_joint_frame(standing_pose())
        projector = CoordinateProjector(lambda points: [(0.0, 0.0)])
        with pytest.raises(ValueError, match="Color mapper returned"):
            projector.project(frame, SurfaceConfig(width=16.0, height=9.0))


# ---------------------------------------------------------------------------
# Pinhole mapper
# ---------------------------------------------------------------------------

class TestPinholeColorMapper:
    def test_optical_axis_hits_principal_point(self):
        mapper = PinholeColorMapper()
        (u, v), = mapper([(0.0, 0.0, 2.0)])
        assert np.allclose((u, v), DEFAULT_COLOR_INTRINSICS[2:])

    def test_up_and_right_in_camera_space(self):
        mapper = PinholeColorMapper()
        cx, cy = DEFAULT_COLOR_INTRINSICS[2:]
        (u, v), = mapper([(0.5, 0.5, 2.0)])
        assert u > cx
        assert v < cy
        assert u - cx == pytest.approx(DEFAULT_COLOR_INTRINSICS[0] * 0.25, rel=1e-6)

    def test_points_behind_sensor_are_unmappable(self):
        mapper = PinholeColorMapper()
        mapped = mapper([(0.0, 0.0, -1.0), (0.0, 0.0, 0.0), (math.nan, 0.0, 2.0), (0.1, 0.1, 1.5)])
        assert mapped[0] == UNMAPPABLE
        assert mapped[1] == UNMAPPABLE
        assert mapped[2] == UNMAPPABLE
        assert is_mappable(mapped[3])

    def test_empty_batch(self):
        assert PinholeColorMapper()([]) == []

    def test_camera_matrix(self):
        mapper = PinholeColorMapper(fx=500.0, fy=510.0, cx=320.0, cy=240.0)
        assert np.allclose(mapper.camera_matrix(), [[500.0, 0.0, 320.0], [0.0, 510.0, 240.0], [0.0, 0.0, 1.0]])

    def test_invalid_focal_length(self):
        with pytest.raises(ValueError):
            PinholeColorMapper(fx=0.0)
