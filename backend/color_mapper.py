from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

import cv2
import numpy as np

Point3 = Tuple[float, float, float]
Point2 = Tuple[float, float]

# Maps a batch of camera-space points (meters) to color-space pixels.
# Unmappable points come back with an infinite coordinate.
ColorMapper = Callable[[Sequence[Point3]], Sequence[Point2]]

UNMAPPABLE: Point2 = (-math.inf, -math.inf)

# Factory intrinsics of the depth sensor's 1920x1080 color camera.
DEFAULT_COLOR_INTRINSICS = (1081.37, 1081.37, 959.5, 539.5)


@dataclass(frozen=True)
class PinholeColorMapper:
    """
    Camera-to-color mapper built on a pinhole model.

    Camera space is y-up with z pointing away from the sensor; image rows grow
    downward, so y is flipped before projection. Points at or behind the
    sensor plane are reported as UNMAPPABLE.
    """

    fx: float = DEFAULT_COLOR_INTRINSICS[0]
    fy: float = DEFAULT_COLOR_INTRINSICS[1]
    cx: float = DEFAULT_COLOR_INTRINSICS[2]
    cy: float = DEFAULT_COLOR_INTRINSICS[3]
    distortion: Optional[Tuple[float, ...]] = None
    min_depth_m: float = 1e-6

    def __post_init__(self) -> None:
        if self.fx <= 1e-6 or self.fy <= 1e-6:
            raise ValueError("Focal lengths must be positive")

    def camera_matrix(self) -> np.ndarray:
        return np.array(
            [[self.fx, 0.0, self.cx], [0.0, self.fy, self.cy], [0.0, 0.0, 1.0]],
            dtype=np.float64,
        )

    def __call__(self, points: Sequence[Point3]) -> List[Point2]:
        if len(points) == 0:
            return []

        xyz = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        mappable = np.isfinite(xyz).all(axis=1) & (xyz[:, 2] > self.min_depth_m)

        output: List[Point2] = [UNMAPPABLE] * len(xyz)
        if not mappable.any():
            return output

        object_points = xyz[mappable].copy()
        object_points[:, 1] *= -1.0
        dist = np.asarray(self.distortion if self.distortion else (), dtype=np.float64)
        image_points, _ = cv2.projectPoints(
            object_points.reshape(-1, 1, 3),
            np.zeros(3, dtype=np.float64),
            np.zeros(3, dtype=np.float64),
            self.camera_matrix(),
            dist if dist.size else None,
        )
        projected = image_points.reshape(-1, 2)
        for out_index, (u, v) in zip(np.flatnonzero(mappable), projected):
            output[int(out_index)] = (float(u), float(v))
        return output
