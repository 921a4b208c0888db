#!/usr/bin/env python3
"""Exercise registry: which named angle drives each repetition counter.

Abduction and shoulder/trunk flexion angles read close to 180 degrees in a
relaxed upright pose and shrink as the limb rises, so those exercises start
at the upper bound and move down first (initial_direction=-1). Elbow and knee
flexion read 0 when the limb is straight.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExerciseSpec:
    key: str
    code: str
    display_name: str
    angle_name: str
    lower_bound_deg: float
    upper_bound_deg: float
    initial_direction: int = 1
    target_repetitions: int = 3


EXERCISE_SPECS: dict[str, ExerciseSpec] = {
    "shoulder_abduction": ExerciseSpec(
        key="shoulder_abduction",
        code="ex1",
        display_name="Shoulder Abduction",
        angle_name="shoulder_abduction_right_deg",
        lower_bound_deg=90.0,
        upper_bound_deg=160.0,
        initial_direction=-1,
    ),
    "shoulder_flexion": ExerciseSpec(
        key="shoulder_flexion",
        code="ex2",
        display_name="Shoulder Flexion",
        angle_name="shoulder_flexion_right_deg",
        lower_bound_deg=90.0,
        upper_bound_deg=160.0,
        initial_direction=-1,
    ),
    "elbow_flexion": ExerciseSpec(
        key="elbow_flexion",
        code="ex3",
        display_name="Elbow Flexion",
        angle_name="elbow_flexion_right_rad",
        lower_bound_deg=15.0,
        upper_bound_deg=100.0,
    ),
    "leg_abduction": ExerciseSpec(
        key="leg_abduction",
        code="ex4",
        display_name="Leg Abduction",
        angle_name="leg_abduction_right_deg",
        lower_bound_deg=150.0,
        upper_bound_deg=175.0,
        initial_direction=-1,
    ),
    "knee_flexion": ExerciseSpec(
        key="knee_flexion",
        code="ex5",
        display_name="Standing Knee Flexion",
        angle_name="knee_flexion_right_rad",
        lower_bound_deg=15.0,
        upper_bound_deg=80.0,
    ),
    "trunk_flexion": ExerciseSpec(
        key="trunk_flexion",
        code="ex6",
        display_name="Trunk Flexion",
        angle_name="spine_sagittal_deg",
        lower_bound_deg=135.0,
        upper_bound_deg=170.0,
        initial_direction=-1,
    ),
}

EXERCISE_ALIASES = {
    "ex1": "shoulder_abduction",
    "ex2": "shoulder_flexion",
    "ex3": "elbow_flexion",
    "ex4": "leg_abduction",
    "ex5": "knee_flexion",
    "ex6": "trunk_flexion",
    "arm_abduction": "shoulder_abduction",
    "squat": "knee_flexion",
}


def canonical_exercise_key(name: str) -> str:
    n = name.strip().lower().replace("-", "_").replace(" ", "_")
    if n in EXERCISE_SPECS:
        return n
    if n in EXERCISE_ALIASES:
        return EXERCISE_ALIASES[n]
    raise KeyError(f"Unknown exercise: {name}")


def get_exercise_spec(name: str) -> ExerciseSpec:
    return EXERCISE_SPECS[canonical_exercise_key(name)]


def available_exercises() -> list[str]:
    return sorted(EXERCISE_SPECS.keys())
