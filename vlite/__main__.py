# vlite/__main__.py
import argparse
import logging
import signal
import sys
from pathlib import Path

from PySide6.QtCore import QCoreApplication, QTimer

from .models.job import JobStatus
from .models.settings import PRESETS, OutputFormat, OutputMode, ResolutionPreset, estimate_output_size
from .orchestrator import Orchestrator
from .utils.paths import find_videos
from .utils.settings import compression_settings, load_settings, save_settings

logger = logging.getLogger("vlite")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vlite", description="Compress a batch of videos with ffmpeg.")
    p.add_argument("paths", nargs="+", help="video files or folders to scan")
    p.add_argument("--preset", choices=list(PRESETS), help="start from a quick preset; other flags override it")
    p.add_argument("--format", choices=[f.value for f in OutputFormat])
    p.add_argument("--resolution", choices=[r.value for r in ResolutionPreset])
    p.add_argument("--width", type=int, help="custom width (implies --resolution Custom)")
    p.add_argument("--height", type=int, help="custom height (implies --resolution Custom)")
    p.add_argument("--no-lock-aspect", action="store_true", help="stretch instead of padding for custom sizes")
    p.add_argument("--level", type=int, help="compression level 1 (best quality) .. 10 (smallest)")
    p.add_argument("--parallel", type=int, help="how many files to encode at once")
    p.add_argument("--remove-audio", action="store_true")
    p.add_argument("--clean-metadata", action="store_true")
    p.add_argument("--turbo", action="store_true")
    p.add_argument("--hdr", action="store_true")
    p.add_argument("--high-efficiency", action="store_true", help="AV1 instead of VP9")
    p.add_argument("--output-dir", help="write results here instead of next to the source")
    p.add_argument("--trash", action="store_true", help="move originals to the trash after success")
    p.add_argument("--save-defaults", action="store_true", help="remember these settings for next time")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


def overrides_from_args(args: argparse.Namespace) -> dict:
    out = dict(PRESETS[args.preset]) if args.preset else {}
    if args.format: out["format"] = args.format
    if args.resolution: out["resolution"] = args.resolution
    if args.width and args.height:
        out.update(resolution=ResolutionPreset.CUSTOM, custom_width=args.width, custom_height=args.height)
    if args.no_lock_aspect: out["lock_aspect_ratio"] = False
    if args.level is not None: out["compression_level"] = args.level
    if args.parallel is not None: out["parallel_limit"] = args.parallel
    if args.remove_audio: out["remove_audio"] = True
    if args.clean_metadata: out["clean_metadata"] = True
    if args.turbo: out["enable_turbo"] = True
    if args.hdr: out["enable_hdr"] = True
    if args.high_efficiency: out["use_high_efficiency_codec"] = True
    if args.trash: out["move_to_trash"] = True
    if args.output_dir: out.update(output_mode=OutputMode.CUSTOM, custom_output_dir=args.output_dir)
    return out


def parse_args(argv=None) -> argparse.Namespace:
    parser = build_parser()
    args = parser.parse_args(argv)
    if (args.width is None) != (args.height is None):
        parser.error("--width and --height must be given together")
    return args


def total_size(files) -> int:
    total = 0
    for f in files:
        try:
            total += Path(f).stat().st_size
        except OSError as e:
            logger.warning("Cannot read size of %s: %s", f, e)
    return total


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    files = [f for p in args.paths for f in find_videos(Path(p))]
    if not files:
        logger.error("No video files found in %s", ", ".join(args.paths))
        return 2

    config = load_settings()
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    orch = Orchestrator(compression_settings(config), config)
    settings = orch.update_settings(**overrides_from_args(args))
    total = total_size(files)
    logger.info("%d file(s), %.1f MB, expect about %.1f MB at level %d", len(files), total / 1e6,
                estimate_output_size(total, settings.compression_level) / 1e6, settings.compression_level)

    def _report(job_id: str):
        job = orch.job(job_id)
        if job.status == JobStatus.COMPLETED:
            logger.info("[%3.0f%%] done  %s -> %s", orch.aggregate_progress, job.name, job.output_path)
        elif job.status == JobStatus.ERROR:
            logger.error("[%3.0f%%] fail  %s: %s", orch.aggregate_progress, job.name, job.error_message)

    def _start():
        if not orch.start():
            app.quit()

    orch.job_changed.connect(_report)
    orch.line_out.connect(lambda job_id, line: logger.debug("%s: %s", job_id[:8], line))
    orch.batch_finished.connect(app.quit)
    orch.batch_stopped.connect(app.quit)
    orch.admission_denied.connect(lambda reason: logger.error("Not started: %s", reason))

    # Ctrl+C: stop every encode; the timer lets Python see the signal while Qt spins
    signal.signal(signal.SIGINT, lambda *_: orch.stop_all())
    tick = QTimer(); tick.timeout.connect(lambda: None); tick.start(200)

    orch.submit(files)
    QTimer.singleShot(0, _start)
    app.exec()
    orch.shutdown()

    if args.save_defaults:
        config["compression"] = settings.to_dict()
        save_settings(config)

    jobs = orch.jobs()
    ok = sum(1 for j in jobs if j.status == JobStatus.COMPLETED)
    logger.info("%d/%d file(s) compressed", ok, len(jobs))
    return 0 if jobs and ok == len(jobs) else 1


if __name__ == "__main__":
    sys.exit(main())
