import argparse
import signal
import sys

from .config import AppConfig, load_config
from .session import MocapSession


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Track a marker with one or more cameras and localize it in 3D")
    ap.add_argument("--config", help="Path to JSON/YAML config")

    ap.add_argument("--devices", nargs="+", type=int, help="Device indices to use (default: all found)")
    ap.add_argument("--tracker", help="Tracker strategy: template, circle or histogram")
    ap.add_argument("--source", choices=["camera", "file", "synthetic"])
    ap.add_argument("--duration", type=float)
    ap.add_argument("--calib", help="Calibration file to apply before tracking")
    ap.add_argument("--calibrate", action="store_true", help="Run chessboard calibration only")
    ap.add_argument("--single-threaded", action="store_true")
    ap.add_argument("--out", help="Session root directory")
    ap.add_argument("--mark", nargs=4, type=float, action="append", metavar=("CAM", "X", "Y", "R"),
                    help="Seed a circular mark on a camera (repeatable)")
    ap.add_argument("--snapshot-every", type=int, metavar="N", help="Save every N-th frameset as images")
    ap.add_argument("--log-level")

    return ap


def _apply_args(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    cfg.apply_overrides(
        devices=args.devices,
        tracker=args.tracker,
        duration_sec=args.duration,
        calibration_path=args.calib,
        calibrate=True if args.calibrate else None,
        single_threaded=True if args.single_threaded else None,
        session_root=args.out,
        marks=args.mark,
        snapshot_every=args.snapshot_every,
        log_level=args.log_level.upper() if args.log_level else None,
    )
    if args.source:
        cfg.source.type = args.source
    return cfg


def main(argv=None) -> int:
    ap = _build_parser()
    args = ap.parse_args(argv)

    cfg = load_config(args.config) if args.config else AppConfig()
    cfg = _apply_args(cfg, args)

    session = MocapSession(cfg)

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
