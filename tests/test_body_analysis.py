#!/usr/bin/env python3
"""Tests for limb lengths, body height and joint angles."""

import math
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from backend.coordinate_projector import CoordinateProjector, SurfaceConfig
from backend.skeleton_adapter import JointType, TrackingState, build_joint_frame
from cv_backend.body_analysis import (
    DOWN,
    FOOT_CLEARANCE_M,
    UP,
    Limb,
    Plane,
    Side,
    abduction_angle,
    angle_between_2d,
    body_height,
    flexion_elbow_angle,
    flexion_hip_angle,
    flexion_knee_angle,
    flexion_shoulder_angle,
    flexion_spine_angle,
    limb_length,
    segments_are_degenerate,
    select_leg_side,
)
from main import pose_with_right_arm, standing_pose

# Standing pose: torso 0.16 + 0.07 + 0.50, leg 0.42 + 0.40 + |(0, -0.05, -0.10)|.
TORSO_M = 0.73
LEG_M = 0.82 + math.hypot(0.05, 0.10)


def _frame(overrides=None, states=None):
    positions = standing_pose()
    positions.update(overrides or {})
    return build_joint_frame(positions, tracking_states=states)


def _leg_states(side, count):
    """Mark all but `count` joints of one leg as inferred."""
    chain = {
        Side.LEFT: (JointType.HIP_LEFT, JointType.KNEE_LEFT, JointType.ANKLE_LEFT, JointType.FOOT_LEFT),
        Side.RIGHT: (JointType.HIP_RIGHT, JointType.KNEE_RIGHT, JointType.ANKLE_RIGHT, JointType.FOOT_RIGHT),
    }[side]
    return {joint: TrackingState.INFERRED for joint in chain[count:]}


# ---------------------------------------------------------------------------
# Lengths and height
# ---------------------------------------------------------------------------

class TestLengths:
    def test_arm_length(self):
        frame = _frame()
        assert limb_length(frame.positions(), Side.RIGHT, Limb.ARM) == pytest.approx(0.61)
        assert limb_length(frame.positions(), Side.LEFT, Limb.ARM) == pytest.approx(0.61)

    def test_leg_length(self):
        assert limb_length(_frame().positions(), Side.LEFT, Limb.LEG) == pytest.approx(LEG_M)

    def test_length_in_two_dimensions(self):
        projected = {
            JointType.SHOULDER_RIGHT: (0.0, 0.0),
            JointType.ELBOW_RIGHT: (3.0, 4.0),
            JointType.WRIST_RIGHT: (3.0, 10.0),
            JointType.HAND_RIGHT: (3.0, 11.0),
        }
        assert limb_length(projected, Side.RIGHT, Limb.ARM) == pytest.approx(12.0)

    def test_body_height(self):
        assert body_height(_frame()) == pytest.approx(TORSO_M + LEG_M + FOOT_CLEARANCE_M)

    def test_body_height_from_projected_points(self):
        frame = _frame()
        doubled = {joint: (2.0 * x, 2.0 * y) for joint, (x, y, _z) in frame.positions().items()}
        # The foot's depth offset disappears in the image plane.
        leg_2d = 0.82 + 0.05
        assert body_height(frame, doubled) == pytest.approx(2.0 * (TORSO_M + leg_2d) + FOOT_CLEARANCE_M)


class TestLegSelection:
    def test_tie_selects_right(self):
        assert select_leg_side(_frame()) == Side.RIGHT

    def test_tie_with_partial_tracking_selects_right(self):
        states = {**_leg_states(Side.LEFT, 2), **_leg_states(Side.RIGHT, 2)}
        assert select_leg_side(_frame(states=states)) == Side.RIGHT

    def test_left_wins_with_strictly_more_tracked(self):
        assert select_leg_side(_frame(states=_leg_states(Side.RIGHT, 3))) == Side.LEFT

    def test_right_wins_with_more_tracked(self):
        assert select_leg_side(_frame(states=_leg_states(Side.LEFT, 1))) == Side.RIGHT

    def test_height_uses_selected_leg(self):
        # Shorter left shin, but only the left leg is fully tracked.
        overrides = {
            JointType.ANKLE_LEFT: (-0.09, -0.82, 2.0),
            JointType.FOOT_LEFT: (-0.09, -0.87, 1.9),
        }
        frame = _frame(overrides, states=_leg_states(Side.RIGHT, 0))
        left_leg = 0.42 + 0.30 + math.hypot(0.05, 0.10)
        assert body_height(frame) == pytest.approx(TORSO_M + left_leg + FOOT_CLEARANCE_M)


# ---------------------------------------------------------------------------
# Angles
# ---------------------------------------------------------------------------

class TestAngleBetween2D:
    def test_perpendicular(self):
        assert angle_between_2d((1.0, 0.0), (0.0, 1.0)) == pytest.approx(90.0)

    def test_opposite(self):
        assert angle_between_2d(UP, DOWN) == pytest.approx(180.0)

    def test_radians(self):
        assert angle_between_2d((1.0, 0.0), (1.0, 1.0), degrees=False) == pytest.approx(math.pi / 4)

    def test_unsigned(self):
        assert angle_between_2d((1.0, 0.0), (0.0, -1.0)) == pytest.approx(90.0)

    def test_zero_vector_is_zero(self):
        assert angle_between_2d((0.0, 0.0), (1.0, 0.0)) == 0.0


class TestSpineAngle:
    def test_upright_reads_180(self):
        frame = _frame()
        assert flexion_spine_angle(frame, Plane.CORONAL) == pytest.approx(180.0)
        assert flexion_spine_angle(frame, Plane.SAGITTAL) == pytest.approx(180.0)

    def test_forward_lean_only_changes_sagittal(self):
        # Shoulders 0.5 m above the base, leaning 0.5 m toward the sensor.
        frame = _frame({JointType.SPINE_SHOULDER: (0.0, 0.45, 1.5)})
        assert flexion_spine_angle(frame, Plane.SAGITTAL) == pytest.approx(135.0)
        assert flexion_spine_angle(frame, Plane.CORONAL) == pytest.approx(180.0)


class TestShoulderAngles:
    def test_abduction_at_rest(self):
        assert abduction_angle(_frame(), Side.RIGHT) == pytest.approx(180.0)

    def test_abduction_horizontal_arm(self):
        frame = build_joint_frame(pose_with_right_arm(0.0))
        assert abduction_angle(frame, Side.RIGHT) == pytest.approx(90.0)
        assert abduction_angle(frame, Side.LEFT) == pytest.approx(180.0)

    def test_abduction_overhead(self):
        frame = build_joint_frame(pose_with_right_arm(math.pi / 2))
        assert abduction_angle(frame, Side.RIGHT) == pytest.approx(0.0, abs=1e-6)

    def test_flexion_forward_arm(self):
        frame = _frame({JointType.ELBOW_RIGHT: (0.18, 0.43, 1.72)})
        assert flexion_shoulder_angle(frame, Side.RIGHT) == pytest.approx(90.0)
        assert flexion_shoulder_angle(frame, Side.LEFT) == pytest.approx(180.0)


class TestLegAngles:
    def test_leg_abduction_uses_hip_and_knee(self):
        tilt = math.radians(30.0)
        knee = (0.09 + 0.42 * math.sin(tilt), -0.10 - 0.42 * math.cos(tilt), 2.0)
        frame = _frame({JointType.KNEE_RIGHT: knee})
        assert abduction_angle(frame, Side.RIGHT, Limb.LEG) == pytest.approx(150.0)
        assert abduction_angle(frame, Side.RIGHT, Limb.ARM) == pytest.approx(180.0)

    def test_hip_flexion(self):
        frame = _frame({JointType.KNEE_RIGHT: (0.09, -0.10, 1.58)})
        assert flexion_hip_angle(frame, Side.RIGHT) == pytest.approx(90.0)


class TestInnerJointAngles:
    def test_straight_limbs_are_zero(self):
        frame = _frame()
        assert flexion_elbow_angle(frame, Side.RIGHT) == pytest.approx(0.0, abs=1e-7)
        assert flexion_knee_angle(frame, Side.LEFT) == pytest.approx(0.0, abs=1e-7)

    def test_right_angle_elbow_in_radians(self):
        frame = _frame({JointType.WRIST_RIGHT: (0.18, 0.15, 1.75)})
        assert flexion_elbow_angle(frame, Side.RIGHT) == pytest.approx(math.pi / 2)

    def test_bent_knee(self):
        frame = _frame({JointType.ANKLE_RIGHT: (0.09, -0.52, 2.4)})
        assert flexion_knee_angle(frame, Side.RIGHT) == pytest.approx(math.pi / 2)

    def test_degenerate_segment_raises(self):
        frame = _frame({JointType.WRIST_RIGHT: (0.18, 0.15, 2.0)})
        chain = (JointType.SHOULDER_RIGHT, JointType.ELBOW_RIGHT, JointType.WRIST_RIGHT)
        assert segments_are_degenerate(frame, chain)
        with pytest.raises(ZeroDivisionError):
            flexion_elbow_angle(frame, Side.RIGHT)

    def test_nearly_collinear_chain_stays_in_range(self):
        # Rounding can push the cosine of collinear segments just past 1.
        frame = _frame({
            JointType.SHOULDER_RIGHT: (0.1, 0.2, 0.3),
            JointType.ELBOW_RIGHT: (0.2, 0.4, 0.6),
            JointType.WRIST_RIGHT: (0.3, 0.6, 0.9),
        })
        angle = flexion_elbow_angle(frame, Side.RIGHT)
        assert math.isfinite(angle)
        assert 0.0 <= angle <= math.pi
        assert angle == pytest.approx(0.0, abs=1e-6)

    def test_folded_chain_reads_pi(self):
        frame = _frame({
            JointType.SHOULDER_RIGHT: (0.1, 0.2, 0.3),
            JointType.ELBOW_RIGHT: (0.2, 0.4, 0.6),
            JointType.WRIST_RIGHT: (0.1, 0.2, 0.3),
        })
        angle = flexion_elbow_angle(frame, Side.RIGHT)
        assert 0.0 <= angle <= math.pi
        assert angle == pytest.approx(math.pi)

    def test_healthy_chain_is_not_degenerate(self):
        chain = (JointType.HIP_LEFT, JointType.KNEE_LEFT, JointType.ANKLE_LEFT)
        assert not segments_are_degenerate(_frame(), chain)


# ---------------------------------------------------------------------------
# Angles from projected surface points
# ---------------------------------------------------------------------------

SURFACE = SurfaceConfig(width=1920.0, height=1080.0)


def _color_mapper(points):
    return [(960.0 + 100.0 * x, 540.0 - 100.0 * y) for x, y, _z in points]


def _projected(frame):
    return CoordinateProjector(_color_mapper).project(frame, SURFACE)


class TestProjectedAngles:
    def test_projection_keeps_coronal_geometry(self):
        frame = _frame()
        assert _projected(frame)[JointType.HEAD] == pytest.approx((0.0, 68.0))

    def test_abduction_horizontal_arm(self):
        frame = build_joint_frame(pose_with_right_arm(0.0))
        projected = _projected(frame)
        assert abduction_angle(frame, Side.RIGHT, positions=projected) == pytest.approx(90.0)
        assert abduction_angle(frame, Side.LEFT, positions=projected) == pytest.approx(180.0)

    def test_leg_abduction_at_rest(self):
        frame = _frame()
        angle = abduction_angle(frame, Side.RIGHT, Limb.LEG, positions=_projected(frame))
        assert angle == pytest.approx(180.0)

    def test_coronal_spine_matches_sensor_space(self):
        frame = _frame({JointType.SPINE_SHOULDER: (0.5, 0.45, 2.0)})
        projected = _projected(frame)
        assert flexion_spine_angle(frame, Plane.CORONAL, positions=projected) == pytest.approx(
            flexion_spine_angle(frame, Plane.CORONAL)
        )
        assert flexion_spine_angle(frame, Plane.CORONAL, positions=projected) == pytest.approx(135.0)

    def test_sagittal_spine_needs_depth(self):
        frame = _frame()
        with pytest.raises(ValueError, match="Sagittal"):
            flexion_spine_angle(frame, Plane.SAGITTAL, positions=_projected(frame))

    def test_elbow_bent_in_image_plane(self):
        frame = _frame({JointType.WRIST_RIGHT: (0.43, 0.15, 2.0)})
        projected = _projected(frame)
        assert flexion_elbow_angle(frame, Side.RIGHT, positions=projected) == pytest.approx(math.pi / 2)
        assert flexion_elbow_angle(frame, Side.RIGHT) == pytest.approx(math.pi / 2)

    def test_straight_knee(self):
        frame = _frame()
        assert flexion_knee_angle(frame, Side.RIGHT, positions=_projected(frame)) == pytest.approx(0.0, abs=1e-6)
