# vlite/parsers/ffmpeg_progress.py
import re

# frame=  240 fps= 48 q=28.0 size=    1024kB time=00:00:08.00 bitrate=1048.6kbits/s speed=1.6x
_TIME = re.compile(r"time=(\d{2,}):(\d{2}):(\d{2}(?:\.\d+)?)")
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

# 100% is only reported once the process exits cleanly
MAX_RUNNING_FRACTION = 0.999


def timestamp_seconds(line: str) -> float | None:
    if not (m := _TIME.search(line)):
        return None
    h, mnt, s = m.groups()
    return int(h) * 3600 + int(mnt) * 60 + float(s)


def parse_progress(line: str, duration: float | None) -> float | None:
    """Fraction of ``duration`` reached according to one ffmpeg status line.

    Returns None for lines without a ``time=`` stamp and when the duration is
    unknown, so callers simply skip the update.
    """
    if not duration or duration <= 0:
        return None
    if (t := timestamp_seconds(line)) is None:
        return None
    return max(0.0, min(t / duration, MAX_RUNNING_FRACTION))


def split_lines(buffer: str) -> tuple[list[str], str]:
    """Split on CR and LF; ffmpeg rewrites its status line with bare CRs."""
    parts = _LINE_BREAK.split(buffer)
    rest = parts.pop()
    return [p for p in parts if p.strip()], rest
