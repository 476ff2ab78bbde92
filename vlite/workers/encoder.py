# vlite/workers/encoder.py
import codecs
import logging
from collections import deque

from PySide6.QtCore import QObject, QProcess, Signal

from ..encoding.planner import EncodePlan
from ..parsers.ffmpeg_progress import parse_progress, split_lines
from ..parsers.ffprobe import duration_args, parse_duration

logger = logging.getLogger(__name__)

TAIL_LINES = 20


class EncodeOperation(QObject):
    """One job's run: probe the source duration, then drive ffmpeg with the plan.

    Both processes are QProcess instances living on the caller's event loop, so
    output and exit notifications arrive as ordinary queued events. After
    ``kill()`` nothing is emitted any more.
    """
    progress = Signal(str, float)        # job_id, fraction 0..0.999
    line_out = Signal(str, str)          # job_id, engine status line
    finished = Signal(str, int, bool)    # job_id, exit code, crashed

    def __init__(self, job_id: str, source_path: str, plan: EncodePlan,
                 ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe", parent=None):
        super().__init__(parent)
        self.job_id = job_id
        self.source_path = source_path
        self.plan = plan
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.duration: float | None = None
        self.tail: deque[str] = deque(maxlen=TAIL_LINES)
        self._killed = False
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._probe: QProcess | None = None
        self._proc: QProcess | None = None

    def start(self):
        self._probe = QProcess(self)
        self._probe.setProgram(self.ffprobe_path)
        self._probe.setArguments(duration_args(self.source_path))
        self._probe.finished.connect(self._on_probe_finished)
        self._probe.errorOccurred.connect(self._on_probe_error)
        self._probe.start()

    def kill(self):
        if self._killed:
            return
        self._killed = True
        live = False
        for p in (self._probe, self._proc):
            if p is not None and p.state() != QProcess.ProcessState.NotRunning:
                p.kill()
                live = True
        if not live:
            self.deleteLater()

    # duration probe

    def _on_probe_finished(self, code: int, status: QProcess.ExitStatus):
        if self._killed:
            self.deleteLater()
            return
        if code == 0 and status == QProcess.ExitStatus.NormalExit:
            out = bytes(self._probe.readAllStandardOutput()).decode("utf-8", "replace")
            self.duration = parse_duration(out)
        if self.duration is None:
            logger.info("Duration unknown for %s, progress will not be reported", self.source_path)
        self._start_encode()

    def _on_probe_error(self, error: QProcess.ProcessError):
        if error != QProcess.ProcessError.FailedToStart or self._killed:
            return
        logger.warning("ffprobe failed to start (%s), continuing without duration", self.ffprobe_path)
        self._start_encode()

    # encode

    def _start_encode(self):
        self._proc = QProcess(self)
        self._proc.setProgram(self.ffmpeg_path)
        self._proc.setArguments(list(self.plan.args))
        self._proc.setStandardInputFile(QProcess.nullDevice())
        self._proc.readyReadStandardError.connect(self._read_stderr)
        self._proc.readyReadStandardOutput.connect(self._read_stdout)
        self._proc.finished.connect(self._on_encode_finished)
        self._proc.errorOccurred.connect(self._on_encode_error)
        logger.debug("Launching %s %s", self.ffmpeg_path, " ".join(self.plan.args))
        self._proc.start()

    def _read_stdout(self):
        # ffmpeg writes to stderr; drain stdout so the pipe never fills
        self._proc.readAllStandardOutput()

    def _read_stderr(self):
        self._feed(bytes(self._proc.readAllStandardError()))

    def _feed(self, data: bytes, final: bool = False):
        # a UTF-8 sequence may straddle two reads
        self._buffer += self._decoder.decode(data, final)
        lines, self._buffer = split_lines(self._buffer)
        for line in lines:
            self._handle_line(line)
        if final and self._buffer.strip():
            self._handle_line(self._buffer)
            self._buffer = ""

    def _handle_line(self, line: str):
        if self._killed:
            return
        line = line.strip()
        self.tail.append(line)
        self.line_out.emit(self.job_id, line)
        if (frac := parse_progress(line, self.duration)) is not None:
            self.progress.emit(self.job_id, frac)

    def _on_encode_finished(self, code: int, status: QProcess.ExitStatus):
        if self._killed:
            self.deleteLater()
            return
        self._feed(bytes(self._proc.readAllStandardError()), final=True)
        crashed = status == QProcess.ExitStatus.CrashExit
        self.finished.emit(self.job_id, -1 if crashed else code, crashed)

    def _on_encode_error(self, error: QProcess.ProcessError):
        if error != QProcess.ProcessError.FailedToStart or self._killed:
            return
        self.tail.append(f"could not launch {self.ffmpeg_path}: {self._proc.errorString()}")
        self.finished.emit(self.job_id, -1, False)
