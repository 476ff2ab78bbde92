# vlite/workers/info_probe.py
import logging
import subprocess
from pathlib import Path

from PySide6.QtCore import QObject, Signal, Slot

from ..parsers.ffprobe import parse_size, size_args

logger = logging.getLogger(__name__)


class MediaProbe:
    """Blocking ffprobe lookups. Failures degrade to 'unknown' instead of raising."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout: int = 30):
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout

    def _run(self, args: list[str]) -> str | None:
        try:
            return subprocess.check_output([self.ffprobe_path, *args], stderr=subprocess.DEVNULL,
                                           text=True, timeout=self.timeout)
        except FileNotFoundError:
            logger.warning("ffprobe not found at %r", self.ffprobe_path)
        except subprocess.CalledProcessError as e:
            logger.warning("ffprobe failed (rc=%s) for %s", e.returncode, args[-1])
        except subprocess.TimeoutExpired:
            logger.warning("ffprobe timed out for %s", args[-1])
        return None

    def size(self, path: str) -> int:
        if (out := self._run(size_args(path))) is not None:
            return parse_size(out)
        try:
            return Path(path).stat().st_size
        except OSError:
            return 0


class ProbeWorker(QObject):
    probed = Signal(str, str, object)  # job_id, kind ("original" | "output"), bytes (may exceed 32 bits)
    encoders_listed = Signal(object)   # frozenset of encoder names

    def __init__(self, probe: MediaProbe):
        super().__init__()
        self.media_probe = probe

    @Slot(str, str, str)
    def probe(self, job_id: str, path: str, kind: str):
        self.probed.emit(job_id, kind, self.media_probe.size(path))

    @Slot(object)
    def list_encoders(self, capabilities):
        self.encoders_listed.emit(capabilities.query())
