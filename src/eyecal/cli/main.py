from __future__ import annotations

import argparse
import dataclasses
import json
import logging
from pathlib import Path

from eyecal.api.readings_io import ReadingsFile, load_readings, save_readings, stereo_result_to_dict
from eyecal.api.session import CalibrationSession
from eyecal.core.consistency import EyeOutcome
from eyecal.core.logging import setup_logging
from eyecal.core.readings import Eye
from eyecal.profiles import BUILTIN_PROFILES, DEFAULT_PROFILE, load_device_profile
from eyecal.sim.synthetic import default_offsets, default_scales, synthesize_readings

logger = logging.getLogger(__name__)


def run_fit(readings_path: Path, *, device: str | None, profile_path: Path | None, out: Path | None) -> int:
    rf = load_readings(readings_path)
    profile = load_device_profile(profile_path) if profile_path is not None else (device or rf.device)
    session = CalibrationSession(profile)
    if not session.init(rf.surface_px[0], rf.surface_px[1], rf.target_mm[0], rf.target_mm[1]):
        logger.error("invalid surface/target dimensions in %s", readings_path)
        return 2

    result = session.get_projection_matrices(rf.left, rf.right)
    ok = result.ok

    # One populated eye: no consistency grade, but the eye can still be fitted.
    if bool(rf.left) != bool(rf.right):
        eye, readings = (Eye.LEFT, rf.left) if rf.left else (Eye.RIGHT, rf.right)
        single = session.get_projection_matrix(readings)
        outcome = EyeOutcome(
            eye=eye,
            calibration=single.calibration if single.ok else session.default_calibration(eye),
            fitted=single.ok,
            error=single.error,
            fit=single.fit,
        )
        result = dataclasses.replace(result, **{eye.value: outcome})
        ok = single.ok

    text = json.dumps(stereo_result_to_dict(result), indent=2, sort_keys=True)
    if out is not None:
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(text, encoding="utf-8")
        print(f"Wrote {out}")
    else:
        print(text)
    return 0 if ok else 1


def run_simulate(
    *,
    out: Path,
    device: str,
    n: int,
    noise_std: float,
    seed: int,
    width: int,
    height: int,
    target_width_mm: float,
    target_height_mm: float,
    eyes: tuple[Eye, ...],
) -> Path:
    session = CalibrationSession(device)
    if not session.init(width, height, target_width_mm, target_height_mm):
        raise ValueError("invalid surface/target dimensions")

    scales = default_scales(session.get_min_scale_hint(), session.get_max_scale_hint(), n)
    offsets = default_offsets(n)
    sides: dict[Eye, list] = {Eye.LEFT: [], Eye.RIGHT: []}
    for i, eye in enumerate(eyes):
        sides[eye] = synthesize_readings(
            eye=eye,
            params=session.default_params(eye),
            geometry=session.geometry,
            scales=scales,
            offsets=offsets,
            noise_std=noise_std,
            seed=seed + i,
        )
    rf = ReadingsFile(
        surface_px=session.surface_size,
        target_mm=session.target_size_mm,
        device=session.profile.name,
        left=sides[Eye.LEFT],
        right=sides[Eye.RIGHT],
    )
    return save_readings(out, rf)


def run_profiles(width: int, height: int) -> None:
    for name in sorted(BUILTIN_PROFILES):
        session = CalibrationSession(name)
        session.init(width, height, 100.0, 100.0)
        info = {
            "min_scale_hint": session.get_min_scale_hint(),
            "max_scale_hint": session.get_max_scale_hint(),
            "drawing_aspect_ratio": session.get_drawing_aspect_ratio(),
            "stereo_stretched": session.is_stereo_stretched(),
        }
        print(f"{name}: {json.dumps(info, sort_keys=True)}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="eyecal")
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-dir", type=Path, default=None, help="Also log to a rotating file in this directory.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    fit = sub.add_parser("fit", help="Fit per-eye projection matrices from a readings JSON file.")
    fit.add_argument("readings", type=Path)
    fit.add_argument("--device", type=str, default=None, choices=sorted(BUILTIN_PROFILES))
    fit.add_argument("--profile", type=Path, default=None, help="Device profile JSON (overrides --device).")
    fit.add_argument("--out", type=Path, default=None, help="Write the result JSON here instead of stdout.")

    sim = sub.add_parser("simulate", help="Write synthetic readings generated from a device's default calibration.")
    sim.add_argument("--out", type=Path, required=True)
    sim.add_argument("--device", type=str, default=DEFAULT_PROFILE, choices=sorted(BUILTIN_PROFILES))
    sim.add_argument("--n", type=int, default=8, help="Readings per eye.")
    sim.add_argument("--noise-std", type=float, default=0.0, help="Judgement noise (normalised display units).")
    sim.add_argument("--seed", type=int, default=0)
    sim.add_argument("--width", type=int, default=1280)
    sim.add_argument("--height", type=int, default=720)
    sim.add_argument("--target-width-mm", type=float, default=80.0)
    sim.add_argument("--target-height-mm", type=float, default=50.0)
    sim.add_argument("--eyes", type=str, default="left,right", help="Comma-separated eyes to simulate.")

    prof = sub.add_parser("profiles", help="List bundled device profiles and their hints.")
    prof.add_argument("--width", type=int, default=1280)
    prof.add_argument("--height", type=int, default=720)

    args = parser.parse_args(argv)
    setup_logging(getattr(logging, args.log_level), log_dir=args.log_dir)

    if args.cmd == "fit":
        return run_fit(args.readings, device=args.device, profile_path=args.profile, out=args.out)

    if args.cmd == "simulate":
        eyes = tuple(Eye.parse(s.strip()) for s in args.eyes.split(",") if s.strip())
        path = run_simulate(
            out=args.out,
            device=args.device,
            n=args.n,
            noise_std=args.noise_std,
            seed=args.seed,
            width=args.width,
            height=args.height,
            target_width_mm=args.target_width_mm,
            target_height_mm=args.target_height_mm,
            eyes=eyes,
        )
        print(f"Wrote {path}")
        return 0

    if args.cmd == "profiles":
        run_profiles(args.width, args.height)
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")


if __name__ == "__main__":
    raise SystemExit(main())
