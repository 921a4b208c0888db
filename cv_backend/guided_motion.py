from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple

from cv_backend.rep_counter import RepetitionConfig, RepetitionState, RepetitionStateMachine

DEFAULT_ANGULAR_STEP = 0.1


@dataclass(frozen=True)
class GuidedMotionConfig:
    """Circular abduction/adduction path a demonstration marker follows."""

    min_angle_deg: float
    max_angle_deg: float
    pivot: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    radius: float = 1.0
    speed: float = 1.0
    repetitions: int = 3
    angular_step: float = DEFAULT_ANGULAR_STEP


class GuidedMotionTarget:
    """
    Moves a marker back and forth along an arc around a pivot joint.

    The marker starts at min_angle_deg. When min_angle_deg > max_angle_deg the
    motion runs clockwise, which only changes the starting direction.
    """

    def __init__(self, config: GuidedMotionConfig) -> None:
        self.config = config
        start = math.radians(config.min_angle_deg)
        end = math.radians(config.max_angle_deg)
        direction = 1 if start <= end else -1
        self.machine = RepetitionStateMachine(
            RepetitionConfig(
                lower_bound=min(start, end),
                upper_bound=max(start, end),
                target_repetitions=config.repetitions,
                angular_step=config.angular_step,
                speed=config.speed,
                initial_direction=direction,
            ),
            start_angle=start,
        )

    @property
    def state(self) -> RepetitionState:
        return self.machine.state

    @property
    def done(self) -> bool:
        return self.machine.completed

    def advance(self, dt: float) -> Tuple[float, float, float]:
        self.machine.advance(dt)
        return self.marker_position()

    def marker_position(self) -> Tuple[float, float, float]:
        px, py, pz = self.config.pivot
        angle = self.machine.state.angle
        return (
            px + self.config.radius * math.cos(angle),
            py + self.config.radius * math.sin(angle),
            pz,
        )
