"""Limb lengths, body height and exercise-specific joint angles.

Lengths, heights, coronal-plane angles and inner joint angles also accept an
identifier-keyed position mapping, so the same call covers sensor space (3D,
meters) and the projected display surface (2D). Sagittal angles need depth and
are 3D only. Angles follow clinical conventions: each one fixes its own plane of
measurement and reference vector.

Units differ per angle and callers depend on it: spine, shoulder and
abduction angles are in degrees, elbow and knee flexion in radians.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from backend.skeleton_adapter import JointFrame, JointType, TrackingState

# Foot-to-ground clearance added to the skeleton height (meters).
FOOT_CLEARANCE_M = 0.08

UP = (0.0, 1.0)
DOWN = (0.0, -1.0)

# Below this squared-magnitude product a 2D angle is reported as 0.
_ANGLE_EPSILON = 1e-15
_SEGMENT_EPSILON = 1e-6


class Side(Enum):
    LEFT = "left"
    RIGHT = "right"


class Limb(Enum):
    ARM = "arm"
    LEG = "leg"


class Plane(Enum):
    CORONAL = "coronal"
    SAGITTAL = "sagittal"


LIMB_CHAINS: Dict[Tuple[Side, Limb], Tuple[JointType, ...]] = {
    (Side.LEFT, Limb.ARM): (
        JointType.SHOULDER_LEFT,
        JointType.ELBOW_LEFT,
        JointType.WRIST_LEFT,
        JointType.HAND_LEFT,
    ),
    (Side.RIGHT, Limb.ARM): (
        JointType.SHOULDER_RIGHT,
        JointType.ELBOW_RIGHT,
        JointType.WRIST_RIGHT,
        JointType.HAND_RIGHT,
    ),
    (Side.LEFT, Limb.LEG): (
        JointType.HIP_LEFT,
        JointType.KNEE_LEFT,
        JointType.ANKLE_LEFT,
        JointType.FOOT_LEFT,
    ),
    (Side.RIGHT, Limb.LEG): (
        JointType.HIP_RIGHT,
        JointType.KNEE_RIGHT,
        JointType.ANKLE_RIGHT,
        JointType.FOOT_RIGHT,
    ),
}

TORSO_CHAIN: Tuple[JointType, ...] = (
    JointType.HEAD,
    JointType.NECK,
    JointType.SPINE_SHOULDER,
    JointType.SPINE_BASE,
)

Positions = Mapping[JointType, Sequence[float]]


def _vec(point: Sequence[float]) -> np.ndarray:
    return np.asarray(point, dtype=np.float64)


def _distance(point_a: Sequence[float], point_b: Sequence[float]) -> float:
    return float(np.linalg.norm(_vec(point_a) - _vec(point_b)))


def chain_length(positions: Positions, chain: Sequence[JointType]) -> float:
    return float(
        sum(_distance(positions[chain[i]], positions[chain[i + 1]]) for i in range(len(chain) - 1))
    )


def limb_length(positions: Positions, side: Side, limb: Limb) -> float:
    """Sum of segment lengths along the limb, in the units of `positions`."""
    return chain_length(positions, LIMB_CHAINS[(side, limb)])


def tracked_joint_count(frame: JointFrame, side: Side, limb: Limb = Limb.LEG) -> int:
    return sum(
        1
        for joint_type in LIMB_CHAINS[(side, limb)]
        if frame.tracking_state(joint_type) == TrackingState.TRACKED
    )


def select_leg_side(frame: JointFrame) -> Side:
    """Leg with more tracked joints; ties go to the right leg."""
    left = tracked_joint_count(frame, Side.LEFT)
    right = tracked_joint_count(frame, Side.RIGHT)
    return Side.LEFT if left > right else Side.RIGHT


def body_height(frame: JointFrame, positions: Optional[Positions] = None) -> float:
    """
    Estimate body height from head to foot.

    Args:
        frame: Frame supplying the tracking states used to pick a leg.
        positions: Joint positions to measure; defaults to the frame's 3D
            positions. Pass the projected surface points for a 2D height.

    Returns:
        Torso chain length plus the selected leg length plus the fixed foot
        clearance.
    """
    if positions is None:
        positions = frame.positions()
    leg_side = select_leg_side(frame)
    return chain_length(positions, TORSO_CHAIN) + limb_length(positions, leg_side, Limb.LEG) + FOOT_CLEARANCE_M


def angle_between_2d(u: Sequence[float], v: Sequence[float], degrees: bool = True) -> float:
    """Unsigned angle between two 2D vectors, in [0, 180] degrees or [0, pi]."""
    u_arr = _vec(u)
    v_arr = _vec(v)
    denom = math.sqrt(float(np.dot(u_arr, u_arr)) * float(np.dot(v_arr, v_arr)))
    if denom < _ANGLE_EPSILON:
        return 0.0
    cosine = float(np.clip(float(np.dot(u_arr, v_arr)) / denom, -1.0, 1.0))
    angle = math.acos(cosine)
    return math.degrees(angle) if degrees else angle


def _segment(
    frame: JointFrame,
    from_joint: JointType,
    to_joint: JointType,
    positions: Optional[Positions] = None,
) -> np.ndarray:
    if positions is None:
        return _vec(frame.position(from_joint)) - _vec(frame.position(to_joint))
    return _vec(positions[from_joint]) - _vec(positions[to_joint])


def _spine_vector(frame: JointFrame, positions: Optional[Positions] = None) -> np.ndarray:
    return _segment(frame, JointType.SPINE_BASE, JointType.SPINE_SHOULDER, positions)


def _coronal(vector: np.ndarray) -> Tuple[float, float]:
    return float(vector[0]), float(vector[1])


def _sagittal(vector: np.ndarray) -> Tuple[float, float]:
    if vector.shape[0] < 3:
        raise ValueError("Sagittal angles need depth; projected 2D points only carry the coronal plane")
    return float(vector[2]), float(vector[1])


def _proximal_joints(side: Side, limb: Limb) -> Tuple[JointType, JointType]:
    chain = LIMB_CHAINS[(side, limb)]
    return chain[0], chain[1]


def flexion_spine_angle(frame: JointFrame, plane: Plane, positions: Optional[Positions] = None) -> float:
    """
    Spine inclination against the up direction, in degrees.

    Pass projected surface points as `positions` for the 2D reading; that
    form only supports the coronal plane.
    """
    spine = _spine_vector(frame, positions)
    spine_2d = _coronal(spine) if plane == Plane.CORONAL else _sagittal(spine)
    return angle_between_2d(UP, spine_2d)


def abduction_angle(
    frame: JointFrame,
    side: Side,
    segment: Limb = Limb.ARM,
    positions: Optional[Positions] = None,
) -> float:
    proximal, distal = _proximal_joints(side, segment)
    limb_vec = _segment(frame, proximal, distal, positions)
    return angle_between_2d(_coronal(_spine_vector(frame, positions)), _coronal(limb_vec))


def flexion_shoulder_angle(frame: JointFrame, side: Side) -> float:
    shoulder, elbow = _proximal_joints(side, Limb.ARM)
    return angle_between_2d(DOWN, _sagittal(_segment(frame, shoulder, elbow)))


def flexion_hip_angle(frame: JointFrame, side: Side) -> float:
    hip, knee = _proximal_joints(side, Limb.LEG)
    return angle_between_2d(DOWN, _sagittal(_segment(frame, hip, knee)))


def _inner_joint_angle(
    frame: JointFrame,
    chain: Sequence[JointType],
    positions: Optional[Positions] = None,
) -> float:
    # No zero-length guard here: a degenerate segment raises ZeroDivisionError.
    proximal, joint, distal = chain
    v1 = _segment(frame, proximal, joint, positions)
    v2 = _segment(frame, joint, distal, positions)
    argument = float(np.dot(v1, v2)) / (float(np.linalg.norm(v1)) * float(np.linalg.norm(v2)))
    return math.acos(max(-1.0, min(1.0, argument)))


def flexion_elbow_angle(frame: JointFrame, side: Side, positions: Optional[Positions] = None) -> float:
    return _inner_joint_angle(frame, LIMB_CHAINS[(side, Limb.ARM)][:3], positions)


def flexion_knee_angle(frame: JointFrame, side: Side, positions: Optional[Positions] = None) -> float:
    return _inner_joint_angle(frame, LIMB_CHAINS[(side, Limb.LEG)][:3], positions)


def segments_are_degenerate(frame: JointFrame, chain: Sequence[JointType]) -> bool:
    return any(
        _distance(frame.position(chain[i]), frame.position(chain[i + 1])) < _SEGMENT_EPSILON
        for i in range(len(chain) - 1)
    )


def orientation_quaternions(frame: JointFrame) -> Dict[JointType, Tuple[float, float, float, float]]:
    return dict(frame.orientations)
