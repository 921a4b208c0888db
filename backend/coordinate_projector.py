from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Sequence, Tuple

from backend.color_mapper import ColorMapper, Point2
from backend.skeleton_adapter import ALL_JOINTS, JointFrame, JointType

logger = logging.getLogger(__name__)

# Native color-frame resolution the mapper reports coordinates in.
REFERENCE_WIDTH = 1920.0
REFERENCE_HEIGHT = 1080.0


@dataclass(frozen=True)
class SurfaceConfig:
    """Size and center of the display surface the skeleton is drawn on."""

    width: float
    height: float
    center_x: float = 0.0
    center_y: float = 0.0

    def __post_init__(self) -> None:
        if not (self.width > 0.0 and self.height > 0.0):
            raise ValueError("Surface width and height must be positive")


def is_mappable(point: Sequence[float]) -> bool:
    return all(math.isfinite(float(value)) for value in point)


def rescale_to_surface(point: Point2, surface: SurfaceConfig) -> Point2:
    x, y = float(point[0]), float(point[1])
    sx = x * surface.width / REFERENCE_WIDTH - surface.width / 2.0 + surface.center_x
    sy = surface.height / 2.0 - y * surface.height / REFERENCE_HEIGHT + surface.center_y
    return sx, sy


class CoordinateProjector:
    def __init__(self, mapper: ColorMapper) -> None:
        self.mapper = mapper

    def project(self, frame: JointFrame, surface: SurfaceConfig) -> Dict[JointType, Point2]:
        """
        Project every joint of the frame onto the display surface.

        Joints the mapper cannot place keep an infinite coordinate; use
        is_mappable() before positioning anything with them.
        """
        camera_points = [frame.position(joint_type) for joint_type in ALL_JOINTS]
        color_points = list(self.mapper(camera_points))
        if len(color_points) != len(camera_points):
            raise ValueError(
                f"Color mapper returned {len(color_points)} points for {len(camera_points)} joints"
            )

        projected: Dict[JointType, Point2] = {}
        for joint_type, color_point in zip(ALL_JOINTS, color_points):
            projected[joint_type] = rescale_to_surface(color_point, surface)
        return projected


def mappable_points(projected: Mapping[JointType, Point2]) -> Dict[JointType, Point2]:
    return {joint_type: point for joint_type, point in projected.items() if is_mappable(point)}


def unmappable_joints(projected: Mapping[JointType, Point2]) -> Tuple[JointType, ...]:
    skipped = tuple(joint_type for joint_type, point in projected.items() if not is_mappable(point))
    if skipped:
        logger.debug("Unmappable joints this tick: %s", ", ".join(jt.value for jt in skipped))
    return skipped
