"""
Repetition counting for range-of-motion exercises.

One oscillation primitive with two drive modes: `advance()` generates the
motion of a guided target, `observe()` follows angles sensed on a patient.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class RepetitionPhase(Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class RepetitionConfig:
    lower_bound: float
    upper_bound: float
    target_repetitions: int = 3
    angular_step: float = 0.1
    speed: float = 1.0
    initial_direction: int = 1

    def __post_init__(self) -> None:
        if self.lower_bound > self.upper_bound:
            raise ValueError(
                f"lower_bound ({self.lower_bound}) must not exceed upper_bound ({self.upper_bound})"
            )
        if self.target_repetitions <= 0:
            raise ValueError("target_repetitions must be positive")
        if self.initial_direction not in (1, -1):
            raise ValueError("initial_direction must be 1 or -1")

    @classmethod
    def from_degrees(
        cls,
        lower_deg: float,
        upper_deg: float,
        target_repetitions: int = 3,
        angular_step: float = 0.1,
        speed: float = 1.0,
        initial_direction: int = 1,
    ) -> "RepetitionConfig":
        return cls(
            lower_bound=math.radians(lower_deg),
            upper_bound=math.radians(upper_deg),
            target_repetitions=target_repetitions,
            angular_step=angular_step,
            speed=speed,
            initial_direction=initial_direction,
        )


@dataclass
class RepetitionState:
    angle: float
    direction: int
    lower_bound: float
    upper_bound: float
    half_cycles_remaining: int
    completed: bool = False

    @property
    def phase(self) -> RepetitionPhase:
        return RepetitionPhase.COMPLETED if self.completed else RepetitionPhase.IN_PROGRESS


class RepetitionStateMachine:
    def __init__(self, config: RepetitionConfig, start_angle: Optional[float] = None) -> None:
        self.config = config
        if start_angle is None:
            start_angle = config.lower_bound if config.initial_direction > 0 else config.upper_bound
        self._start_angle = float(start_angle)
        self.state = self._initial_state()

    def _initial_state(self) -> RepetitionState:
        return RepetitionState(
            angle=self._start_angle,
            direction=self.config.initial_direction,
            lower_bound=self.config.lower_bound,
            upper_bound=self.config.upper_bound,
            half_cycles_remaining=2 * self.config.target_repetitions,
        )

    @property
    def completed(self) -> bool:
        return self.state.completed

    @property
    def repetitions_done(self) -> int:
        half_cycles_done = 2 * self.config.target_repetitions - self.state.half_cycles_remaining
        return half_cycles_done // 2

    def advance(self, dt: float = 1.0) -> RepetitionState:
        """Guided drive: move the angle one time-scaled step."""
        if self.state.completed:
            return self.state
        step = self.state.direction * self.config.angular_step * self.config.speed * dt
        self._move_to(self.state.angle + step, inclusive=False)
        return self.state

    def observe(self, angle: float) -> RepetitionState:
        """Sensed drive: follow a measured angle (radians)."""
        if self.state.completed:
            return self.state
        if not math.isfinite(angle):
            logger.debug("Ignoring non-finite angle sample %r", angle)
            return self.state
        self._move_to(float(angle), inclusive=True)
        return self.state

    def _move_to(self, angle: float, inclusive: bool) -> None:
        state = self.state
        state.angle = angle
        if state.direction > 0:
            reached = angle >= state.upper_bound if inclusive else angle > state.upper_bound
        else:
            reached = angle <= state.lower_bound if inclusive else angle < state.lower_bound
        if not reached:
            return

        state.direction = -state.direction
        state.half_cycles_remaining -= 1
        if state.half_cycles_remaining <= 0:
            state.half_cycles_remaining = 0
            state.completed = True
            logger.info("Repetitions completed (%d)", self.config.target_repetitions)

    def reset(self) -> None:
        self.state = self._initial_state()

    def to_dict(self) -> dict:
        return {
            "angle": self.state.angle,
            "direction": self.state.direction,
            "lower_bound": self.state.lower_bound,
            "upper_bound": self.state.upper_bound,
            "half_cycles_remaining": self.state.half_cycles_remaining,
            "repetitions_done": self.repetitions_done,
            "target_repetitions": self.config.target_repetitions,
            "completed": self.state.completed,
            "phase": self.state.phase.value,
        }
