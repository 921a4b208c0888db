"""MotionAnalysisEngine: one synchronous pass per sensor tick.

Reconciles body identities, then for each selected body projects its joints
onto the display surface, computes the named angle set and measurements, and
feeds the exercise angle to that body's repetition counter. Returns plain
data for the presentation layer; nothing here renders.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import config
from backend.color_mapper import ColorMapper, Point2
from backend.coordinate_projector import (
    CoordinateProjector,
    SurfaceConfig,
    is_mappable,
    mappable_points,
    unmappable_joints,
)
from backend.skeleton_adapter import BodyBatch, JointFrame, JointType, TrackingState
from cv_backend.body_analysis import (
    LIMB_CHAINS,
    TORSO_CHAIN,
    Limb,
    Plane,
    Side,
    abduction_angle,
    body_height,
    flexion_elbow_angle,
    flexion_hip_angle,
    flexion_knee_angle,
    flexion_shoulder_angle,
    flexion_spine_angle,
    limb_length,
    orientation_quaternions,
    segments_are_degenerate,
    select_leg_side,
)
from cv_backend.body_registry import (
    EntityFactory,
    EntityReleaser,
    TrackedBody,
    TrackedBodyRegistry,
    selection_strategy_from_name,
)
from cv_backend.guided_motion import GuidedMotionConfig, GuidedMotionTarget
from cv_backend.pt_coach.exercises import ExerciseSpec, get_exercise_spec
from cv_backend.rep_counter import RepetitionConfig, RepetitionStateMachine

logger = logging.getLogger(__name__)

Segment = Tuple[JointType, JointType]
AngleDefinition = Tuple[Tuple[Segment, ...], Callable[[JointFrame], float]]

_SPINE: Segment = (JointType.SPINE_BASE, JointType.SPINE_SHOULDER)


def _build_angle_definitions() -> Dict[str, AngleDefinition]:
    definitions: Dict[str, AngleDefinition] = {
        "spine_coronal_deg": ((_SPINE,), partial(flexion_spine_angle, plane=Plane.CORONAL)),
        "spine_sagittal_deg": ((_SPINE,), partial(flexion_spine_angle, plane=Plane.SAGITTAL)),
    }
    for side in Side:
        shoulder, elbow, wrist, _hand = LIMB_CHAINS[(side, Limb.ARM)]
        hip, knee, ankle, _foot = LIMB_CHAINS[(side, Limb.LEG)]
        definitions[f"shoulder_flexion_{side.value}_deg"] = (
            ((shoulder, elbow),),
            partial(flexion_shoulder_angle, side=side),
        )
        definitions[f"shoulder_abduction_{side.value}_deg"] = (
            (_SPINE, (shoulder, elbow)),
            partial(abduction_angle, side=side, segment=Limb.ARM),
        )
        definitions[f"leg_abduction_{side.value}_deg"] = (
            (_SPINE, (hip, knee)),
            partial(abduction_angle, side=side, segment=Limb.LEG),
        )
        definitions[f"hip_flexion_{side.value}_deg"] = (
            ((hip, knee),),
            partial(flexion_hip_angle, side=side),
        )
        definitions[f"elbow_flexion_{side.value}_rad"] = (
            ((shoulder, elbow), (elbow, wrist)),
            partial(flexion_elbow_angle, side=side),
        )
        definitions[f"knee_flexion_{side.value}_rad"] = (
            ((hip, knee), (knee, ankle)),
            partial(flexion_knee_angle, side=side),
        )
    return definitions


ANGLE_DEFINITIONS: Dict[str, AngleDefinition] = _build_angle_definitions()


def angle_in_radians(name: str, value: float) -> float:
    return math.radians(value) if name.endswith("_deg") else value


@dataclass(frozen=True)
class EngineConfig:
    surface: SurfaceConfig
    exercise_key: str = "shoulder_abduction"
    target_repetitions: Optional[int] = None
    selection_mode: str = "first"
    max_bodies: int = 1
    elbow_bend_threshold_deg: float = 30.0
    guided_demo: bool = False
    guided_speed: float = 1.0
    guided_radius: float = 1.0
    guided_angular_step: float = 0.1
    guided_min_angle_deg: float = -90.0
    guided_max_angle_deg: float = 0.0
    guided_pivot: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    log_every_n_frames: int = 30

    @classmethod
    def from_settings(cls) -> "EngineConfig":
        return cls(
            surface=SurfaceConfig(
                width=config.SURFACE_WIDTH,
                height=config.SURFACE_HEIGHT,
                center_x=config.SURFACE_CENTER_X,
                center_y=config.SURFACE_CENTER_Y,
            ),
            exercise_key=config.DEFAULT_EXERCISE,
            target_repetitions=config.TARGET_REPETITIONS,
            selection_mode=config.BODY_SELECTION,
            max_bodies=config.MAX_TRACKED_BODIES,
            elbow_bend_threshold_deg=config.ELBOW_BEND_THRESHOLD_DEG,
            guided_demo=config.ENABLE_GUIDED_DEMO,
            guided_speed=config.GUIDED_SPEED,
            guided_radius=config.GUIDED_RADIUS,
            guided_angular_step=config.GUIDED_ANGULAR_STEP,
            guided_min_angle_deg=config.GUIDED_MIN_ANGLE_DEG,
            guided_max_angle_deg=config.GUIDED_MAX_ANGLE_DEG,
            log_every_n_frames=config.LOG_EVERY_N_FRAMES,
        )


@dataclass
class BodyAnalysis:
    tracking_id: int
    entity: Any
    markers_2d: Dict[JointType, Point2]
    positions_3d: Dict[JointType, Tuple[float, float, float]]
    orientations: Dict[JointType, Tuple[float, float, float, float]]
    skipped_joints: Tuple[JointType, ...]
    angles: Dict[str, float]
    measurements: Dict[str, float]
    elbow_bent: Dict[str, bool]
    repetitions: Dict[str, Any]


@dataclass
class TickResult:
    timestamp: float
    frame_index: int
    created: Tuple[int, ...] = ()
    removed: Tuple[int, ...] = ()
    bodies: List[BodyAnalysis] = field(default_factory=list)
    guide: Optional[Dict[str, Any]] = None


class MotionAnalysisEngine:
    def __init__(
        self,
        engine_config: EngineConfig,
        create_entity: Optional[EntityFactory] = None,
        release_entity: Optional[EntityReleaser] = None,
    ) -> None:
        self.config = engine_config
        self.exercise: ExerciseSpec = get_exercise_spec(engine_config.exercise_key)
        if self.exercise.angle_name not in ANGLE_DEFINITIONS:
            raise KeyError(f"Exercise '{self.exercise.key}' uses unknown angle '{self.exercise.angle_name}'")
        target = engine_config.target_repetitions or self.exercise.target_repetitions
        self.repetition_config = RepetitionConfig.from_degrees(
            self.exercise.lower_bound_deg,
            self.exercise.upper_bound_deg,
            target_repetitions=target,
            initial_direction=self.exercise.initial_direction,
        )
        self.registry = TrackedBodyRegistry(
            create_entity=create_entity,
            release_entity=release_entity,
            selection=selection_strategy_from_name(engine_config.selection_mode),
            max_bodies=engine_config.max_bodies,
        )
        self.guide: Optional[GuidedMotionTarget] = None
        if engine_config.guided_demo:
            self.guide = GuidedMotionTarget(
                GuidedMotionConfig(
                    min_angle_deg=engine_config.guided_min_angle_deg,
                    max_angle_deg=engine_config.guided_max_angle_deg,
                    pivot=engine_config.guided_pivot,
                    radius=engine_config.guided_radius,
                    speed=engine_config.guided_speed,
                    repetitions=target,
                    angular_step=engine_config.guided_angular_step,
                )
            )
        self.frame_index = 0

    def tick(
        self,
        batch: Optional[BodyBatch],
        mapper: Optional[ColorMapper],
        dt: float = 0.0,
    ) -> Optional[TickResult]:
        if batch is None or mapper is None:
            logger.debug("Skipping tick: frame source or color mapper unavailable")
            return None

        reconcile = self.registry.reconcile(batch.bodies)
        projector = CoordinateProjector(mapper)
        bodies = [self._analyze_body(body, projector) for body in reconcile.selected]

        guide_payload = None
        if self.guide is not None:
            step_dt = dt if math.isfinite(dt) and dt > 0.0 else 0.0
            position = self.guide.advance(step_dt)
            guide_payload = {
                "angle": self.guide.state.angle,
                "position": position,
                "completed": self.guide.done,
            }

        self.frame_index += 1
        result = TickResult(
            timestamp=batch.timestamp,
            frame_index=self.frame_index,
            created=reconcile.created,
            removed=reconcile.removed,
            bodies=bodies,
            guide=guide_payload,
        )
        if self.frame_index % max(self.config.log_every_n_frames, 1) == 0:
            logger.info(
                "frame=%d tracked=%d analyzed=%d",
                self.frame_index,
                len(self.registry),
                len(bodies),
            )
        return result

    def _analyze_body(self, body: TrackedBody, projector: CoordinateProjector) -> BodyAnalysis:
        frame = body.frame
        projected = projector.project(frame, self.config.surface)
        angles = compute_angles(frame)
        measurements = compute_measurements(frame, projected)

        elbow_bent: Dict[str, bool] = {}
        threshold = self.config.elbow_bend_threshold_deg
        for side in Side:
            elbow = LIMB_CHAINS[(side, Limb.ARM)][1]
            angle = angles.get(f"elbow_flexion_{side.value}_rad")
            if angle is None or not is_mappable(projected[elbow]):
                continue
            elbow_bent[side.value] = math.degrees(angle) > threshold

        if body.repetitions is None:
            body.repetitions = RepetitionStateMachine(self.repetition_config)
        exercise_angle = angles.get(self.exercise.angle_name)
        if exercise_angle is not None:
            body.repetitions.observe(angle_in_radians(self.exercise.angle_name, exercise_angle))

        return BodyAnalysis(
            tracking_id=body.tracking_id,
            entity=body.entity,
            markers_2d=mappable_points(projected),
            positions_3d=frame.positions(),
            orientations=orientation_quaternions(frame),
            skipped_joints=unmappable_joints(projected),
            angles=angles,
            measurements=measurements,
            elbow_bent=elbow_bent,
            repetitions=body.repetitions.to_dict(),
        )


def compute_angles(frame: JointFrame) -> Dict[str, float]:
    """Named angle set; angles over untracked or zero-length segments are left out."""
    angles: Dict[str, float] = {}
    for name, (segments, fn) in ANGLE_DEFINITIONS.items():
        joints = {joint for segment in segments for joint in segment}
        if any(frame.tracking_state(joint) == TrackingState.NOT_TRACKED for joint in joints):
            continue
        if any(segments_are_degenerate(frame, segment) for segment in segments):
            continue
        angles[name] = float(fn(frame))
    return angles


def compute_measurements(
    frame: JointFrame,
    projected: Mapping[JointType, Point2],
) -> Dict[str, float]:
    measurements: Dict[str, float] = {"body_height_m": body_height(frame)}

    height_joints = TORSO_CHAIN + LIMB_CHAINS[(select_leg_side(frame), Limb.LEG)]
    if all(is_mappable(projected[joint]) for joint in height_joints):
        measurements["body_height_px"] = body_height(frame, projected)

    positions = frame.positions()
    for side in Side:
        for limb in Limb:
            key = f"{limb.value}_length_{side.value}"
            measurements[f"{key}_m"] = limb_length(positions, side, limb)
            if all(is_mappable(projected[joint]) for joint in LIMB_CHAINS[(side, limb)]):
                measurements[f"{key}_px"] = limb_length(projected, side, limb)
    return measurements


def to_pipeline_payload(result: TickResult) -> Dict[str, object]:
    return {
        "timestamp": result.timestamp,
        "frame_index": result.frame_index,
        "created": list(result.created),
        "removed": list(result.removed),
        "bodies": [
            {
                "tracking_id": body.tracking_id,
                "markers_2d": {
                    joint_type.value: [point[0], point[1]]
                    for joint_type, point in body.markers_2d.items()
                },
                "positions_3d": {
                    joint_type.value: list(point) for joint_type, point in body.positions_3d.items()
                },
                "orientations": {
                    joint_type.value: list(quat) for joint_type, quat in body.orientations.items()
                },
                "skipped_joints": [joint_type.value for joint_type in body.skipped_joints],
                "angles": dict(body.angles),
                "measurements": dict(body.measurements),
                "elbow_bent": dict(body.elbow_bent),
                "repetitions": dict(body.repetitions),
            }
            for body in result.bodies
        ],
        "guide": (
            {
                "angle": result.guide["angle"],
                "position": list(result.guide["position"]),
                "completed": result.guide["completed"],
            }
            if result.guide is not None
            else None
        ),
    }
