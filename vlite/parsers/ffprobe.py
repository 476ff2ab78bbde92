# vlite/parsers/ffprobe.py
import math


def duration_args(path: str) -> list[str]:
    return ["-v", "error", "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1", str(path)]


def size_args(path: str) -> list[str]:
    return ["-v", "error", "-show_entries", "format=size",
            "-of", "default=noprint_wrappers=1:nokey=1", str(path)]


def parse_duration(output: str) -> float | None:
    try:
        value = float(output.strip().splitlines()[0])
    except (ValueError, IndexError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


def parse_size(output: str) -> int:
    try:
        return max(0, int(output.strip().splitlines()[0]))
    except (ValueError, IndexError):
        return 0
