from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

# Maximum number of bodies the depth sensor reports in one frame.
MAX_BODIES = 6

IDENTITY_QUATERNION: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)


class JointType(Enum):
    """The 25 skeletal landmarks, in the sensor's native order."""

    SPINE_BASE = "spine_base"
    SPINE_MID = "spine_mid"
    NECK = "neck"
    HEAD = "head"
    SHOULDER_LEFT = "shoulder_left"
    ELBOW_LEFT = "elbow_left"
    WRIST_LEFT = "wrist_left"
    HAND_LEFT = "hand_left"
    SHOULDER_RIGHT = "shoulder_right"
    ELBOW_RIGHT = "elbow_right"
    WRIST_RIGHT = "wrist_right"
    HAND_RIGHT = "hand_right"
    HIP_LEFT = "hip_left"
    KNEE_LEFT = "knee_left"
    ANKLE_LEFT = "ankle_left"
    FOOT_LEFT = "foot_left"
    HIP_RIGHT = "hip_right"
    KNEE_RIGHT = "knee_right"
    ANKLE_RIGHT = "ankle_right"
    FOOT_RIGHT = "foot_right"
    SPINE_SHOULDER = "spine_shoulder"
    HAND_TIP_LEFT = "hand_tip_left"
    THUMB_LEFT = "thumb_left"
    HAND_TIP_RIGHT = "hand_tip_right"
    THUMB_RIGHT = "thumb_right"


ALL_JOINTS: Tuple[JointType, ...] = tuple(JointType)


class TrackingState(Enum):
    NOT_TRACKED = 0
    INFERRED = 1
    TRACKED = 2


_TRACKING_STATE_ALIASES: Dict[str, TrackingState] = {
    "not_tracked": TrackingState.NOT_TRACKED,
    "nottracked": TrackingState.NOT_TRACKED,
    "inferred": TrackingState.INFERRED,
    "tracked": TrackingState.TRACKED,
}


@dataclass(frozen=True)
class Joint:
    position: Tuple[float, float, float]
    tracking_state: TrackingState = TrackingState.TRACKED


@dataclass(frozen=True)
class JointFrame:
    """
    One sensor frame for one body.

    Holds exactly one Joint and one orientation quaternion (x, y, z, w) per
    JointType. Both mappings are exposed read-only.
    """

    joints: Mapping[JointType, Joint]
    orientations: Mapping[JointType, Tuple[float, float, float, float]]

    def __post_init__(self) -> None:
        joint_keys = set(self.joints.keys())
        orientation_keys = set(self.orientations.keys())
        missing_joints = [jt.value for jt in ALL_JOINTS if jt not in joint_keys]
        if missing_joints or len(joint_keys) != len(ALL_JOINTS):
            raise ValueError(f"JointFrame requires all {len(ALL_JOINTS)} joints, missing {missing_joints}")
        if orientation_keys != joint_keys:
            missing = sorted(jt.value for jt in joint_keys - orientation_keys)
            raise ValueError(f"JointFrame orientations missing for {missing}")
        object.__setattr__(self, "joints", MappingProxyType(dict(self.joints)))
        object.__setattr__(self, "orientations", MappingProxyType(dict(self.orientations)))

    def position(self, joint_type: JointType) -> Tuple[float, float, float]:
        return self.joints[joint_type].position

    def tracking_state(self, joint_type: JointType) -> TrackingState:
        return self.joints[joint_type].tracking_state

    def is_tracked(self, joint_type: JointType) -> bool:
        return self.joints[joint_type].tracking_state == TrackingState.TRACKED

    def positions(self) -> Dict[JointType, Tuple[float, float, float]]:
        return {joint_type: joint.position for joint_type, joint in self.joints.items()}


@dataclass(frozen=True)
class BodyObservation:
    tracking_id: int
    is_tracked: bool
    frame: Optional[JointFrame] = None


@dataclass(frozen=True)
class BodyBatch:
    timestamp: float
    bodies: Tuple[BodyObservation, ...] = field(default_factory=tuple)

    def tracked(self) -> List[BodyObservation]:
        return [body for body in self.bodies if body.is_tracked and body.frame is not None]


def build_joint_frame(
    positions: Mapping[JointType, Tuple[float, float, float]],
    tracking_states: Optional[Mapping[JointType, TrackingState]] = None,
    orientations: Optional[Mapping[JointType, Tuple[float, float, float, float]]] = None,
) -> JointFrame:
    """Fill in a complete JointFrame; absent joints sit at the origin, not tracked."""
    tracking_states = tracking_states or {}
    orientations = orientations or {}
    joints: Dict[JointType, Joint] = {}
    for joint_type in ALL_JOINTS:
        if joint_type in positions:
            state = tracking_states.get(joint_type, TrackingState.TRACKED)
            joints[joint_type] = Joint(tuple(float(v) for v in positions[joint_type]), state)
        else:
            joints[joint_type] = Joint((0.0, 0.0, 0.0), TrackingState.NOT_TRACKED)
    full_orientations = {
        joint_type: tuple(orientations.get(joint_type, IDENTITY_QUATERNION)) for joint_type in ALL_JOINTS
    }
    return JointFrame(joints=joints, orientations=full_orientations)


def _as_xyz(values: object, joint_name: str) -> Tuple[float, float, float]:
    if not isinstance(values, (list, tuple)) or len(values) != 3:
        raise ValueError(f"Joint '{joint_name}' must be a 3-element array")

    xyz: List[float] = []
    for index, raw_value in enumerate(values):
        if isinstance(raw_value, bool) or not isinstance(raw_value, (int, float)):
            raise ValueError(
                f"Joint '{joint_name}' coordinate at index {index} must be numeric"
            )
        if not math.isfinite(raw_value):
            raise ValueError(
                f"Joint '{joint_name}' coordinate at index {index} must be finite"
            )
        xyz.append(float(raw_value))
    return xyz[0], xyz[1], xyz[2]


def _as_quaternion(values: object, joint_name: str) -> Tuple[float, float, float, float]:
    if not isinstance(values, (list, tuple)) or len(values) != 4:
        raise ValueError(f"Orientation '{joint_name}' must be a 4-element array [x, y, z, w]")
    if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in values):
        raise ValueError(f"Orientation '{joint_name}' values must be numeric")
    if not all(math.isfinite(value) for value in values):
        raise ValueError(f"Orientation '{joint_name}' values must be finite")
    x, y, z, w = (float(value) for value in values)
    return x, y, z, w


def _parse_joint_type(raw_name: object) -> JointType:
    name = str(raw_name).strip().lower()
    try:
        return JointType(name)
    except ValueError as error:
        raise ValueError(f"Unknown joint '{raw_name}'") from error


def _parse_tracking_state(raw_state: object, joint_name: str) -> TrackingState:
    if isinstance(raw_state, TrackingState):
        return raw_state
    if isinstance(raw_state, int) and not isinstance(raw_state, bool):
        try:
            return TrackingState(raw_state)
        except ValueError as error:
            raise ValueError(f"'{joint_name}.tracking_state' must be 0, 1 or 2") from error
    if isinstance(raw_state, str):
        key = raw_state.strip().lower().replace("-", "_").replace(" ", "_")
        if key in _TRACKING_STATE_ALIASES:
            return _TRACKING_STATE_ALIASES[key]
    raise ValueError(f"'{joint_name}.tracking_state' is not a valid tracking state: {raw_state!r}")


def _parse_joints(
    joints_obj: object,
) -> Tuple[Dict[JointType, Tuple[float, float, float]], Dict[JointType, TrackingState]]:
    if not isinstance(joints_obj, Mapping):
        raise ValueError("'joints' must be an object")

    positions: Dict[JointType, Tuple[float, float, float]] = {}
    states: Dict[JointType, TrackingState] = {}
    for raw_name, raw_joint in joints_obj.items():
        joint_type = _parse_joint_type(raw_name)
        if isinstance(raw_joint, Mapping):
            if "position" not in raw_joint:
                raise ValueError(f"Joint '{raw_name}' is missing 'position'")
            positions[joint_type] = _as_xyz(raw_joint["position"], str(raw_name))
            states[joint_type] = _parse_tracking_state(
                raw_joint.get("tracking_state", TrackingState.TRACKED.value), str(raw_name)
            )
        else:
            # Bare [x, y, z] arrays are treated as fully tracked joints.
            positions[joint_type] = _as_xyz(raw_joint, str(raw_name))
            states[joint_type] = TrackingState.TRACKED
    return positions, states


def _parse_orientations(
    orientations_obj: object,
) -> Dict[JointType, Tuple[float, float, float, float]]:
    if orientations_obj is None:
        return {}
    if not isinstance(orientations_obj, Mapping):
        raise ValueError("'orientations' must be an object")
    return {
        _parse_joint_type(raw_name): _as_quaternion(raw_quat, str(raw_name))
        for raw_name, raw_quat in orientations_obj.items()
    }


def _parse_tracking_id(raw_id: object) -> int:
    if isinstance(raw_id, bool) or not isinstance(raw_id, (int, str)):
        raise ValueError("'tracking_id' must be an unsigned 64-bit integer")
    try:
        tracking_id = int(raw_id)
    except ValueError as error:
        raise ValueError("'tracking_id' must be an unsigned 64-bit integer") from error
    if tracking_id < 0 or tracking_id >= 2 ** 64:
        raise ValueError("'tracking_id' must be an unsigned 64-bit integer")
    return tracking_id


def adapt_body_payload(payload: Mapping[str, object]) -> BodyObservation:
    required_fields = ("tracking_id", "is_tracked")
    for name in required_fields:
        if name not in payload:
            raise ValueError(f"Missing required field '{name}'")

    tracking_id = _parse_tracking_id(payload["tracking_id"])
    is_tracked = payload["is_tracked"]
    if not isinstance(is_tracked, bool):
        raise ValueError("'is_tracked' must be a boolean")

    # Untracked slots are ignored by the engine, so their joints are not parsed.
    if not is_tracked:
        return BodyObservation(tracking_id=tracking_id, is_tracked=False)

    if "joints" not in payload:
        raise ValueError("Missing required field 'joints' for a tracked body")
    positions, states = _parse_joints(payload["joints"])
    orientations = _parse_orientations(payload.get("orientations"))
    frame = build_joint_frame(positions, states, orientations)
    return BodyObservation(tracking_id=tracking_id, is_tracked=True, frame=frame)


def adapt_body_batch(payload: Mapping[str, object]) -> BodyBatch:
    if "bodies" not in payload:
        raise ValueError("Missing required field 'bodies'")
    bodies_obj = payload["bodies"]
    if not isinstance(bodies_obj, (list, tuple)):
        raise ValueError("'bodies' must be an array")
    if len(bodies_obj) > MAX_BODIES:
        raise ValueError(f"'bodies' holds {len(bodies_obj)} entries, the sensor reports at most {MAX_BODIES}")

    raw_timestamp = payload.get("timestamp", 0.0)
    if isinstance(raw_timestamp, bool) or not isinstance(raw_timestamp, (int, float)):
        raise ValueError("'timestamp' must be numeric")

    bodies: List[BodyObservation] = []
    for index, body_obj in enumerate(bodies_obj):
        if not isinstance(body_obj, Mapping):
            raise ValueError(f"'bodies[{index}]' must be an object")
        bodies.append(adapt_body_payload(body_obj))
    return BodyBatch(timestamp=float(raw_timestamp), bodies=tuple(bodies))


def frame_to_payload(frame: JointFrame) -> Dict[str, object]:
    return {
        "joints": {
            joint_type.value: {
                "position": list(joint.position),
                "tracking_state": joint.tracking_state.name.lower(),
            }
            for joint_type, joint in frame.joints.items()
        },
        "orientations": {
            joint_type.value: list(quat) for joint_type, quat in frame.orientations.items()
        },
    }


def observations_to_batch_payload(
    observations: Iterable[BodyObservation],
    timestamp: float,
) -> Dict[str, object]:
    bodies: List[Dict[str, object]] = []
    for observation in observations:
        body: Dict[str, object] = {
            "tracking_id": observation.tracking_id,
            "is_tracked": observation.is_tracked,
        }
        if observation.frame is not None:
            body.update(frame_to_payload(observation.frame))
        bodies.append(body)
    return {"timestamp": float(timestamp), "bodies": bodies}
