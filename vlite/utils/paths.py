# vlite/utils/paths.py
import logging
from pathlib import Path

from PySide6.QtCore import QFile

from ..models.settings import CompressionSettings, OutputMode, ResolutionPreset

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = {".mp4", ".mov", ".avi", ".mkv", ".webm"}


def is_video(path: Path) -> bool:
    return path.is_file() and path.suffix.lower() in VIDEO_EXTENSIONS


def find_videos(path: Path, max_depth: int = 5) -> list[Path]:
    """Expand a dropped path into video files, walking folders in name order."""
    if path.is_file():
        return [path] if is_video(path) else []

    found: list[Path] = []

    def _walk(current: Path, depth: int) -> None:
        if depth > max_depth:
            return
        try:
            entries = sorted(current.iterdir())
        except OSError as e:
            logger.debug("Skipping %s: %s", current, e)
            return
        for item in entries:
            if item.is_dir():
                _walk(item, depth + 1)
            elif is_video(item):
                found.append(item)

    if path.is_dir():
        _walk(path, 0)
    return found


def output_dir_for(source: Path, settings: CompressionSettings) -> Path:
    if settings.output_mode == OutputMode.CUSTOM and settings.custom_output_dir:
        return Path(settings.custom_output_dir)
    return source.parent


def output_path_for(source_path: str, settings: CompressionSettings) -> Path:
    """<dir>/<stem>_compressed[_<preset>].<ext>"""
    source = Path(source_path)
    suffix = "" if settings.resolution == ResolutionPreset.ORIGINAL else f"_{settings.resolution.value}"
    name = f"{source.stem}_compressed{suffix}.{settings.format.extension}"
    return output_dir_for(source, settings) / name


def move_to_trash(path: str) -> bool:
    """Move a file to the platform's recoverable trash. False if that failed."""
    if not Path(path).exists():
        logger.warning("Cannot trash %s: file is gone", path)
        return False
    ok = QFile.moveToTrash(path)
    if isinstance(ok, tuple):  # some bindings also hand back the trash location
        ok = ok[0]
    if not ok:
        logger.warning("Could not move %s to trash", path)
    return bool(ok)
