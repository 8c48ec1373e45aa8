"""
Device profiles: per-device constants as data rather than per-device code.

A profile carries the calibration-shape hints and the manufacturer default
calibration used to seed the solver (and returned when no fit is possible).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from eyecal.core.readings import Eye

SCHEMA_VERSION = "eyecal.device_profile.v0"


class ProfileValidationError(ValueError):
    pass


@dataclass(frozen=True)
class DeviceProfile:
    name: str
    min_scale: float
    max_scale: float
    aspect_correction: float = 1.0
    stereo_stretched: bool = False
    focal_length: float = 2.0
    ipd_mm: float = 63.0
    eye_center_mm: tuple[float, float, float] = (0.0, 10.0, -20.0)
    eye_rotation_rvec: tuple[float, float, float] = (0.0, 0.0, 0.0)
    min_shape_px: int = 64

    def eye_position_mm(self, eye: Eye) -> np.ndarray:
        """Default eye centre in the camera frame (x right, y down, z forward)."""
        sign = -1.0 if Eye.parse(eye) is Eye.LEFT else 1.0
        c = np.asarray(self.eye_center_mm, dtype=np.float64).reshape(3).copy()
        c[0] += sign * 0.5 * float(self.ipd_mm)
        return c

    def drawing_aspect_ratio(self, surface_width: int, surface_height: int) -> float:
        if surface_width <= 0 or surface_height <= 0:
            raise ValueError("surface dimensions must be > 0")
        return float(surface_width) / float(surface_height) * float(self.aspect_correction)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "name": self.name,
            "min_scale": self.min_scale,
            "max_scale": self.max_scale,
            "aspect_correction": self.aspect_correction,
            "stereo_stretched": self.stereo_stretched,
            "focal_length": self.focal_length,
            "ipd_mm": self.ipd_mm,
            "eye_center_mm": list(self.eye_center_mm),
            "eye_rotation_rvec": list(self.eye_rotation_rvec),
            "min_shape_px": self.min_shape_px,
        }


BUILTIN_PROFILES: dict[str, DeviceProfile] = {
    "generic_mono": DeviceProfile(name="generic_mono", min_scale=0.1, max_scale=0.8),
    "generic_stereo": DeviceProfile(name="generic_stereo", min_scale=0.1, max_scale=0.8),
    # Side-by-side 3D: each eye gets half the surface, stretched back to full width.
    "generic_stereo_sbs": DeviceProfile(
        name="generic_stereo_sbs",
        min_scale=0.15,
        max_scale=0.75,
        aspect_correction=1.0,
        stereo_stretched=True,
    ),
}

DEFAULT_PROFILE = "generic_stereo"


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ProfileValidationError(msg)


def _vec3(data: dict[str, Any], key: str, default: tuple[float, float, float]) -> tuple[float, float, float]:
    raw = data.get(key, list(default))
    _require(isinstance(raw, (list, tuple)) and len(raw) == 3, f"{key} must be [x,y,z]")
    v = tuple(float(x) for x in raw)
    _require(all(np.isfinite(v)), f"{key} must be finite")
    return v  # type: ignore[return-value]


def parse_device_profile(data: dict[str, Any]) -> DeviceProfile:
    _require(data.get("schema_version") == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    name = data.get("name")
    _require(isinstance(name, str) and bool(name), "name is required")

    for key in ("min_scale", "max_scale"):
        _require(data.get(key) is not None, f"{key} is required")
    min_scale = float(data["min_scale"])
    max_scale = float(data["max_scale"])
    _require(0.0 <= min_scale <= max_scale <= 1.0, "scales must satisfy 0 <= min_scale <= max_scale <= 1")

    aspect_correction = float(data.get("aspect_correction", 1.0))
    _require(np.isfinite(aspect_correction) and aspect_correction > 0.0, "aspect_correction must be > 0")

    focal_length = float(data.get("focal_length", 2.0))
    _require(np.isfinite(focal_length) and focal_length > 0.0, "focal_length must be > 0")

    ipd_mm = float(data.get("ipd_mm", 63.0))
    _require(np.isfinite(ipd_mm) and ipd_mm >= 0.0, "ipd_mm must be >= 0")

    min_shape_px = int(data.get("min_shape_px", 64))
    _require(min_shape_px >= 0, "min_shape_px must be >= 0")

    return DeviceProfile(
        name=name,
        min_scale=min_scale,
        max_scale=max_scale,
        aspect_correction=aspect_correction,
        stereo_stretched=bool(data.get("stereo_stretched", False)),
        focal_length=focal_length,
        ipd_mm=ipd_mm,
        eye_center_mm=_vec3(data, "eye_center_mm", (0.0, 10.0, -20.0)),
        eye_rotation_rvec=_vec3(data, "eye_rotation_rvec", (0.0, 0.0, 0.0)),
        min_shape_px=min_shape_px,
    )


def load_device_profile(path: Path) -> DeviceProfile:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_device_profile(data)


def resolve_profile(profile: DeviceProfile | str | None) -> DeviceProfile:
    if profile is None:
        return BUILTIN_PROFILES[DEFAULT_PROFILE]
    if isinstance(profile, DeviceProfile):
        return profile
    try:
        return BUILTIN_PROFILES[str(profile)]
    except KeyError as e:
        known = ", ".join(sorted(BUILTIN_PROFILES))
        raise ProfileValidationError(f"unknown device profile {profile!r} (known: {known})") from e
