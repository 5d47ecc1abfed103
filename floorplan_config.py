"""Environment-driven settings for the floor plan compiler command line."""

import os
import logging
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_PREVIEW_SCALE = 2.0


def get_default_output_dir() -> Path:
    """Get the directory compiled artefacts are written to.

    FLOORPLAN_OUTPUT_DIR wins when set; otherwise ./out under the working
    directory.

    Returns:
        Path object to the output directory (created if needed)
    """
    configured = os.getenv("FLOORPLAN_OUTPUT_DIR", "").strip()
    output_dir = Path(configured) if configured else Path.cwd() / "out"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


def get_log_level(override: Optional[str] = None) -> int:
    """Resolve the logging level from an explicit value or FLOORPLAN_LOG_LEVEL.

    Unknown level names fall back to WARNING.
    """
    name = (override or os.getenv("FLOORPLAN_LOG_LEVEL", "") or DEFAULT_LOG_LEVEL).strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        logger.warning(f"Unknown log level {name!r}, using {DEFAULT_LOG_LEVEL}")
        return logging.WARNING
    return level


def get_preview_scale() -> float:
    """Get the PNG rasterisation scale (FLOORPLAN_PNG_SCALE, default 2)."""
    raw = os.getenv("FLOORPLAN_PNG_SCALE", "").strip()
    if not raw:
        return DEFAULT_PREVIEW_SCALE
    try:
        scale = float(raw)
    except ValueError:
        logger.warning(f"Invalid FLOORPLAN_PNG_SCALE {raw!r}, using {DEFAULT_PREVIEW_SCALE}")
        return DEFAULT_PREVIEW_SCALE
    if scale <= 0:
        logger.warning(f"FLOORPLAN_PNG_SCALE must be positive, using {DEFAULT_PREVIEW_SCALE}")
        return DEFAULT_PREVIEW_SCALE
    return scale
