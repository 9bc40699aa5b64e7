import argparse
import signal
import sys

from .config import ConfigError, LocalizerConfig, load_config
from .replay import ReplaySession


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Replay a recorded event log through the tag localizer")
    ap.add_argument("--config", help="Path to JSON/YAML config")
    ap.add_argument("--events", required=True, help="JSON-lines event log")
    ap.add_argument("--landmarks", help="Landmark map (JSON/YAML) loaded before replay")
    ap.add_argument("--calib", help="OpenCV calibration file; marks the camera as ready")

    ap.add_argument("--node-name")
    ap.add_argument("--out")
    ap.add_argument("--target-ids", nargs="+")
    ap.add_argument("--marker-size", type=float)
    ap.add_argument("--distance-threshold", type=float)
    ap.add_argument("--ekf-time-tolerance", type=float)
    ap.add_argument("--ekf-position-tolerance", type=float)
    ap.add_argument("--detection-mode")
    ap.add_argument("--tag-family")
    ap.add_argument("--log-level")

    return ap


def _apply_args(cfg: LocalizerConfig, args: argparse.Namespace) -> LocalizerConfig:
    cfg.apply_overrides(
        node_name=args.node_name,
        session_root=args.out,
        target_tag_ids=args.target_ids,
        marker_size=args.marker_size,
        distance_threshold=args.distance_threshold,
        ekf_time_tolerance=args.ekf_time_tolerance,
        ekf_position_tolerance=args.ekf_position_tolerance,
        detection_mode=args.detection_mode,
        tag_family=args.tag_family,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    return cfg.validate()


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config) if args.config else LocalizerConfig()
        cfg = _apply_args(cfg, args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2

    session = ReplaySession(cfg, args.events, landmarks_path=args.landmarks, calib_path=args.calib)

    def _handle_signal(_sig, _frame):
        session.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _handle_signal)

    summary = session.run()
    print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
