from __future__ import annotations

import argparse
from dataclasses import replace
import json
import logging
import math
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

import numpy as np

import config
from backend.color_mapper import PinholeColorMapper
from backend.skeleton_adapter import (
    BodyBatch,
    BodyObservation,
    JointType,
    adapt_body_batch,
    build_joint_frame,
    observations_to_batch_payload,
)
from cv_backend.guided_motion import GuidedMotionConfig, GuidedMotionTarget
from cv_backend.motion_engine import EngineConfig, MotionAnalysisEngine, TickResult, to_pipeline_payload
from cv_backend.pt_coach.exercises import available_exercises

logger = logging.getLogger(__name__)

UPPER_ARM_M = 0.28
FOREARM_M = 0.25
HAND_M = 0.08

# Relaxed standing pose facing the sensor, camera space (meters), y up.
# The subject's right side is at +x.
_STANDING_POSE: Dict[JointType, Tuple[float, float, float]] = {
    JointType.SPINE_BASE: (0.0, -0.05, 0.0),
    JointType.SPINE_MID: (0.0, 0.25, 0.0),
    JointType.SPINE_SHOULDER: (0.0, 0.45, 0.0),
    JointType.NECK: (0.0, 0.52, 0.0),
    JointType.HEAD: (0.0, 0.68, 0.0),
    JointType.SHOULDER_LEFT: (-0.18, 0.43, 0.0),
    JointType.ELBOW_LEFT: (-0.18, 0.15, 0.0),
    JointType.WRIST_LEFT: (-0.18, -0.10, 0.0),
    JointType.HAND_LEFT: (-0.18, -0.18, 0.0),
    JointType.HAND_TIP_LEFT: (-0.18, -0.25, 0.0),
    JointType.THUMB_LEFT: (-0.15, -0.17, 0.02),
    JointType.SHOULDER_RIGHT: (0.18, 0.43, 0.0),
    JointType.ELBOW_RIGHT: (0.18, 0.15, 0.0),
    JointType.WRIST_RIGHT: (0.18, -0.10, 0.0),
    JointType.HAND_RIGHT: (0.18, -0.18, 0.0),
    JointType.HAND_TIP_RIGHT: (0.18, -0.25, 0.0),
    JointType.THUMB_RIGHT: (0.15, -0.17, 0.02),
    JointType.HIP_LEFT: (-0.09, -0.10, 0.0),
    JointType.KNEE_LEFT: (-0.09, -0.52, 0.0),
    JointType.ANKLE_LEFT: (-0.09, -0.92, 0.0),
    JointType.FOOT_LEFT: (-0.09, -0.97, -0.10),
    JointType.HIP_RIGHT: (0.09, -0.10, 0.0),
    JointType.KNEE_RIGHT: (0.09, -0.52, 0.0),
    JointType.ANKLE_RIGHT: (0.09, -0.92, 0.0),
    JointType.FOOT_RIGHT: (0.09, -0.97, -0.10),
}


def standing_pose(depth_m: float = 2.0) -> Dict[JointType, Tuple[float, float, float]]:
    return {joint_type: (x, y, z + depth_m) for joint_type, (x, y, z) in _STANDING_POSE.items()}


def pose_with_right_arm(polar_angle: float, depth_m: float = 2.0) -> Dict[JointType, Tuple[float, float, float]]:
    """Standing pose with the straight right arm pointing along `polar_angle` (radians, coronal plane)."""
    positions = standing_pose(depth_m)
    shoulder = np.asarray(positions[JointType.SHOULDER_RIGHT])
    direction = np.array([math.cos(polar_angle), math.sin(polar_angle), 0.0])
    reach = {
        JointType.ELBOW_RIGHT: UPPER_ARM_M,
        JointType.WRIST_RIGHT: UPPER_ARM_M + FOREARM_M,
        JointType.HAND_RIGHT: UPPER_ARM_M + FOREARM_M + HAND_M,
        JointType.HAND_TIP_RIGHT: UPPER_ARM_M + FOREARM_M + 1.8 * HAND_M,
        JointType.THUMB_RIGHT: UPPER_ARM_M + FOREARM_M + HAND_M,
    }
    for joint_type, distance in reach.items():
        point = shoulder + distance * direction
        positions[joint_type] = (float(point[0]), float(point[1]), float(point[2]))
    return positions


def read_batches(path: Path) -> Iterator[BodyBatch]:
    with path.open("r", encoding="utf-8") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            line = raw_line.strip()
            if not line:
                continue
            try:
                yield adapt_body_batch(json.loads(line))
            except (ValueError, TypeError) as error:
                logger.warning("Ignoring invalid batch on line %d: %s", line_number, error)


def _summarize(result: TickResult) -> str:
    if not result.bodies:
        return f"[frame {result.frame_index}] no tracked body"
    parts = []
    for body in result.bodies:
        reps = body.repetitions
        height = body.measurements.get("body_height_m", float("nan"))
        parts.append(
            f"body={body.tracking_id} height={height:.2f}m "
            f"reps={reps['repetitions_done']}/{reps['target_repetitions']} "
            f"skipped={len(body.skipped_joints)}"
        )
    return f"[frame {result.frame_index}] " + " | ".join(parts)


def run_replay(args: argparse.Namespace) -> int:
    source = Path(args.source)
    if not source.exists():
        raise FileNotFoundError(f"Recording not found: {source}")

    engine_config = EngineConfig.from_settings()
    if args.exercise:
        engine_config = _with_exercise(engine_config, args.exercise)
    engine = MotionAnalysisEngine(engine_config)
    mapper = PinholeColorMapper()

    out_handle = None
    if args.json_out:
        out_path = Path(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_handle = out_path.open("w", encoding="utf-8")

    last_result: Optional[TickResult] = None
    previous_timestamp: Optional[float] = None
    try:
        for batch in read_batches(source):
            dt = 0.0 if previous_timestamp is None else max(batch.timestamp - previous_timestamp, 0.0)
            previous_timestamp = batch.timestamp
            result = engine.tick(batch, mapper, dt)
            if result is None:
                continue
            last_result = result
            if out_handle is not None:
                out_handle.write(json.dumps(to_pipeline_payload(result)) + "\n")
            if args.print_every > 0 and result.frame_index % args.print_every == 0:
                print(_summarize(result))
            if args.max_frames and result.frame_index >= args.max_frames:
                break
    finally:
        if out_handle is not None:
            out_handle.close()

    if last_result is None:
        print("No frames processed.")
        return 1
    print(_summarize(last_result))
    return 0


def _with_exercise(engine_config: EngineConfig, exercise: str) -> EngineConfig:
    return replace(engine_config, exercise_key=exercise)


def run_guided(args: argparse.Namespace) -> int:
    target = GuidedMotionTarget(
        GuidedMotionConfig(
            min_angle_deg=args.min_angle,
            max_angle_deg=args.max_angle,
            radius=args.radius,
            speed=args.speed,
            repetitions=args.repetitions,
            angular_step=config.GUIDED_ANGULAR_STEP,
        )
    )
    steps = 0
    while not target.done and steps < args.max_steps:
        x, y, z = target.advance(args.dt)
        steps += 1
        if args.print_every > 0 and steps % args.print_every == 0:
            state = target.state
            print(
                f"[step {steps}] angle={math.degrees(state.angle):7.2f}deg "
                f"marker=({x:.3f}, {y:.3f}, {z:.3f}) half_cycles_left={state.half_cycles_remaining}"
            )
    print(f"Guided motion {'completed' if target.done else 'stopped'} after {steps} steps")
    return 0 if target.done else 1


def run_synthesize(args: argparse.Namespace) -> int:
    """Record a right-arm abduction session driven by the guided target."""
    target = GuidedMotionTarget(
        GuidedMotionConfig(
            min_angle_deg=-90.0,
            max_angle_deg=0.0,
            speed=args.speed,
            repetitions=args.repetitions,
        )
    )
    if args.fps <= 0:
        raise ValueError("--fps must be positive")
    dt = 1.0 / args.fps
    out_path = Path(args.output)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    frames = 0
    with out_path.open("w", encoding="utf-8") as handle:
        while frames < args.max_frames:
            frame = build_joint_frame(pose_with_right_arm(target.state.angle, args.depth))
            observations = [BodyObservation(tracking_id=args.tracking_id, is_tracked=True, frame=frame)]
            handle.write(json.dumps(observations_to_batch_payload(observations, frames * dt)) + "\n")
            frames += 1
            if target.done:
                break
            target.advance(dt)

    print(f"Wrote {frames} frames to {out_path}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Skeletal motion analysis engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    replay = subparsers.add_parser("replay", help="Feed a recorded body-batch JSONL file through the engine")
    replay.add_argument("source", help="Path to a JSONL recording, one body batch per line")
    replay.add_argument("--exercise", default="", choices=[""] + available_exercises())
    replay.add_argument("--json-out", default="", help="Write per-tick results as JSONL")
    replay.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0=all)")
    replay.add_argument("--print-every", type=int, default=config.LOG_EVERY_N_FRAMES)
    replay.set_defaults(handler=run_replay)

    guided = subparsers.add_parser("guided", help="Run the guided demonstration target to completion")
    guided.add_argument("--min-angle", type=float, default=config.GUIDED_MIN_ANGLE_DEG)
    guided.add_argument("--max-angle", type=float, default=config.GUIDED_MAX_ANGLE_DEG)
    guided.add_argument("--radius", type=float, default=config.GUIDED_RADIUS)
    guided.add_argument("--speed", type=float, default=config.GUIDED_SPEED)
    guided.add_argument("--repetitions", type=int, default=config.TARGET_REPETITIONS)
    guided.add_argument("--dt", type=float, default=1.0, help="Elapsed time per step")
    guided.add_argument("--max-steps", type=int, default=10000)
    guided.add_argument("--print-every", type=int, default=5)
    guided.set_defaults(handler=run_guided)

    synth = subparsers.add_parser("synthesize", help="Write a synthetic shoulder-abduction recording")
    synth.add_argument("output", help="Destination JSONL path")
    synth.add_argument("--fps", type=float, default=30.0)
    synth.add_argument("--speed", type=float, default=30.0)
    synth.add_argument("--repetitions", type=int, default=config.TARGET_REPETITIONS)
    synth.add_argument("--depth", type=float, default=2.0, help="Distance from the sensor (m)")
    synth.add_argument("--tracking-id", type=int, default=72057594037927936)
    synth.add_argument("--max-frames", type=int, default=5000)
    synth.set_defaults(handler=run_synthesize)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return args.handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
