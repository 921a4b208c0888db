from __future__ import annotations

import os
import shlex
from pathlib import Path

SCRIPT_DIR = Path(__file__).resolve().parent
ENV_PATH = SCRIPT_DIR / ".env"


def _load_env_file(path: Path) -> None:
    if not path.exists():
        return

    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        if line.startswith("export "):
            line = line[len("export ") :].strip()

        key, value = line.split("=", 1)
        key = key.strip()

        lexer = shlex.shlex(value.strip(), posix=True)
        lexer.whitespace_split = True
        lexer.commenters = "#"
        parsed = " ".join(list(lexer)).strip().strip('"').strip("'")

        if key and key not in os.environ:
            os.environ[key] = parsed


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


_load_env_file(ENV_PATH)

# Display surface the projected skeleton is drawn on.
SURFACE_WIDTH = _float_env("SURFACE_WIDTH", 16.0)
SURFACE_HEIGHT = _float_env("SURFACE_HEIGHT", 9.0)
SURFACE_CENTER_X = _float_env("SURFACE_CENTER_X", 0.0)
SURFACE_CENTER_Y = _float_env("SURFACE_CENTER_Y", 0.0)

DEFAULT_EXERCISE = os.getenv("DEFAULT_EXERCISE", "shoulder_abduction")
TARGET_REPETITIONS = _int_env("TARGET_REPETITIONS", 3)
GUIDED_SPEED = _float_env("GUIDED_SPEED", 1.0)
GUIDED_RADIUS = _float_env("GUIDED_RADIUS", 1.0)
GUIDED_ANGULAR_STEP = _float_env("GUIDED_ANGULAR_STEP", 0.1)
# Arc of the guided marker, polar angle around the pivot (0 = pointing right).
GUIDED_MIN_ANGLE_DEG = _float_env("GUIDED_MIN_ANGLE_DEG", -90.0)
GUIDED_MAX_ANGLE_DEG = _float_env("GUIDED_MAX_ANGLE_DEG", 0.0)
ENABLE_GUIDED_DEMO = _bool_env("ENABLE_GUIDED_DEMO", False)

BODY_SELECTION = os.getenv("BODY_SELECTION", "first").strip().lower()
MAX_TRACKED_BODIES = _int_env("MAX_TRACKED_BODIES", 1)
ELBOW_BEND_THRESHOLD_DEG = _float_env("ELBOW_BEND_THRESHOLD_DEG", 30.0)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_EVERY_N_FRAMES = max(_int_env("LOG_EVERY_N_FRAMES", 30), 1)

SURFACE_WIDTH = max(SURFACE_WIDTH, 1e-3)
SURFACE_HEIGHT = max(SURFACE_HEIGHT, 1e-3)
TARGET_REPETITIONS = max(TARGET_REPETITIONS, 1)
GUIDED_SPEED = max(GUIDED_SPEED, 0.0)
GUIDED_RADIUS = max(GUIDED_RADIUS, 0.0)
GUIDED_ANGULAR_STEP = max(GUIDED_ANGULAR_STEP, 1e-4)
MAX_TRACKED_BODIES = max(1, min(6, MAX_TRACKED_BODIES))
ELBOW_BEND_THRESHOLD_DEG = max(0.0, min(180.0, ELBOW_BEND_THRESHOLD_DEG))
if BODY_SELECTION not in {"first", "closest"}:
    BODY_SELECTION = "first"
if LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
    LOG_LEVEL = "INFO"
