from __future__ import annotations

import enum
from dataclasses import dataclass, field

import numpy as np

# Tracker poses are often float32; allow for that round-off.
_ROTATION_TOL = 1e-4


class Eye(enum.Enum):
    LEFT = "left"
    RIGHT = "right"

    @classmethod
    def parse(cls, value: "Eye | str") -> "Eye":
        if isinstance(value, Eye):
            return value
        try:
            return cls(str(value).lower())
        except ValueError as e:
            raise ValueError(f"eye must be 'left' or 'right' (got {value!r})") from e


@dataclass(frozen=True)
class CalibrationReading:
    """
    One user-confirmed alignment.

    - `target_pose`: (3,4) target->camera transform, translation in mm
    - `shape_scale`: half-width of the drawn shape, fraction of the drawable half-width
    - `shape_offset`: centre of the drawn shape in normalised display coordinates
    """

    eye: Eye
    target_pose: np.ndarray  # (3,4)
    shape_scale: float
    shape_offset: tuple[float, float] = field(default=(0.0, 0.0))

    def __post_init__(self) -> None:
        pose = np.array(self.target_pose, dtype=np.float64)
        if pose.shape == (4, 4):
            pose = pose[:3]
        if pose.shape != (3, 4):
            raise ValueError(f"target_pose must be (3,4) or (4,4), got {pose.shape}")
        if not np.all(np.isfinite(pose)):
            raise ValueError("target_pose has non-finite values")
        R = pose[:, :3]
        if not np.allclose(R.T @ R, np.eye(3), atol=_ROTATION_TOL) or abs(np.linalg.det(R) - 1.0) > _ROTATION_TOL:
            raise ValueError("target_pose rotation block must be orthonormal with det +1")
        pose.setflags(write=False)

        scale = float(self.shape_scale)
        if not np.isfinite(scale) or not (0.0 < scale <= 1.0):
            raise ValueError(f"shape_scale must be in (0, 1], got {self.shape_scale!r}")

        offset = tuple(float(v) for v in self.shape_offset)
        if len(offset) != 2 or not all(np.isfinite(offset)):
            raise ValueError("shape_offset must be two finite floats")

        # Frozen dataclass: normalise fields in place.
        object.__setattr__(self, "eye", Eye.parse(self.eye))
        object.__setattr__(self, "target_pose", pose)
        object.__setattr__(self, "shape_scale", scale)
        object.__setattr__(self, "shape_offset", offset)

    @property
    def rotation(self) -> np.ndarray:
        return self.target_pose[:, :3]

    @property
    def translation_mm(self) -> np.ndarray:
        return self.target_pose[:, 3]


def split_interleaved(readings: list[CalibrationReading]) -> tuple[list[CalibrationReading], list[CalibrationReading]]:
    """Even- and odd-indexed readings, in recording order."""
    readings = list(readings)
    return readings[0::2], readings[1::2]
