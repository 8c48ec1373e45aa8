from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np

from eyecal.core.consistency import EyeOutcome, StereoCalibrationResult
from eyecal.core.eye_model import EyeCalibration
from eyecal.core.readings import CalibrationReading, Eye

READINGS_SCHEMA = "eyecal.readings.v0"
RESULT_SCHEMA = "eyecal.result.v0"


class ReadingsValidationError(ValueError):
    pass


@dataclass(frozen=True)
class ReadingsFile:
    surface_px: tuple[int, int]
    target_mm: tuple[float, float]
    device: str | None = None
    left: list[CalibrationReading] = field(default_factory=list)
    right: list[CalibrationReading] = field(default_factory=list)


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ReadingsValidationError(msg)


def _parse_reading(eye: Eye, raw: Any, where: str) -> CalibrationReading:
    _require(isinstance(raw, dict), f"{where} must be an object")
    _require("target_pose" in raw and "shape_scale" in raw, f"{where} needs target_pose and shape_scale")
    try:
        return CalibrationReading(
            eye=eye,
            target_pose=np.asarray(raw["target_pose"], dtype=np.float64),
            shape_scale=float(raw["shape_scale"]),
            shape_offset=tuple(raw.get("shape_offset", (0.0, 0.0))),
        )
    except (TypeError, ValueError) as e:
        raise ReadingsValidationError(f"{where}: {e}") from e


def parse_readings(data: dict[str, Any]) -> ReadingsFile:
    _require(isinstance(data, dict), "readings file must be a JSON object")
    _require(data.get("schema_version") == READINGS_SCHEMA, f"schema_version must be {READINGS_SCHEMA}")

    surface = data.get("surface", {})
    target = data.get("target", {})
    _require(isinstance(surface, dict), "surface must be an object")
    _require(isinstance(target, dict), "target must be an object")
    _require(
        surface.get("width_px") is not None and surface.get("height_px") is not None,
        "surface.width_px and surface.height_px are required",
    )
    _require(
        target.get("width_mm") is not None and target.get("height_mm") is not None,
        "target.width_mm and target.height_mm are required",
    )

    sides: dict[Eye, list[CalibrationReading]] = {}
    for eye in (Eye.LEFT, Eye.RIGHT):
        raw_list = data.get(eye.value, [])
        _require(isinstance(raw_list, list), f"{eye.value} must be a list of readings")
        sides[eye] = [_parse_reading(eye, raw, f"{eye.value}[{i}]") for i, raw in enumerate(raw_list)]

    device = data.get("device")
    return ReadingsFile(
        surface_px=(int(surface["width_px"]), int(surface["height_px"])),
        target_mm=(float(target["width_mm"]), float(target["height_mm"])),
        device=str(device) if device is not None else None,
        left=sides[Eye.LEFT],
        right=sides[Eye.RIGHT],
    )


def load_readings(path: Path) -> ReadingsFile:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_readings(data)


def reading_to_dict(r: CalibrationReading) -> dict[str, Any]:
    return {
        "target_pose": np.asarray(r.target_pose, dtype=np.float64).tolist(),
        "shape_scale": float(r.shape_scale),
        "shape_offset": [float(v) for v in r.shape_offset],
    }


def readings_to_dict(rf: ReadingsFile) -> dict[str, Any]:
    out: dict[str, Any] = {
        "schema_version": READINGS_SCHEMA,
        "surface": {"width_px": int(rf.surface_px[0]), "height_px": int(rf.surface_px[1])},
        "target": {"width_mm": float(rf.target_mm[0]), "height_mm": float(rf.target_mm[1])},
        "left": [reading_to_dict(r) for r in rf.left],
        "right": [reading_to_dict(r) for r in rf.right],
    }
    if rf.device is not None:
        out["device"] = rf.device
    return out


def save_readings(path: Path, rf: ReadingsFile) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(readings_to_dict(rf), indent=2, sort_keys=True), encoding="utf-8")
    return path


def calibration_to_dict(cal: EyeCalibration | None) -> dict[str, Any] | None:
    if cal is None:
        return None
    return {
        "eye": cal.eye.value,
        "params": cal.params.to_dict(),
        "camera_to_eye_pose": np.asarray(cal.camera_to_eye_pose, dtype=np.float64).tolist(),
        "eye_projection": np.asarray(cal.eye_projection, dtype=np.float64).tolist(),
    }


def _outcome_to_dict(o: EyeOutcome) -> dict[str, Any]:
    out: dict[str, Any] = {
        "fitted": bool(o.fitted),
        "error": o.error.reason if o.error is not None else None,
        "calibration": calibration_to_dict(o.calibration),
    }
    if o.fit is not None:
        out["rms_residual"] = float(o.fit.rms_residual)
        out["condition_number"] = float(o.fit.condition_number)
        out["n_readings"] = int(o.fit.n_readings)
    return out


def stereo_result_to_dict(result: StereoCalibrationResult) -> dict[str, Any]:
    return {
        "schema_version": RESULT_SCHEMA,
        "grade": result.grade.name,
        "left": _outcome_to_dict(result.left),
        "right": _outcome_to_dict(result.right),
        "metrics": {k: float(v) for k, v in sorted(result.metrics.items())},
    }
