# vlite/orchestrator.py
"""Batch transcode queue.

The orchestrator is the only thing that changes job state. It lives on the Qt
event loop: user commands are plain method calls, every running encode talks
back through signals, and size probes come back from a worker thread through
queued signals. Nothing here blocks on a child process.

Per job::

    queued --admit--> processing --exit 0--> completed
                                 --exit !0--> error
                                 --stop----> queued (progress 0)
"""
import logging
from dataclasses import dataclass
from functools import partial

from PySide6.QtCore import QObject, QThread, Signal

from .admission import AdmissionGate, allow_all, check
from .encoding.capabilities import EncoderCapabilities
from .encoding.planner import EncodePlan, needs_encoders, plan
from .errors import JobBusyError, JobNotFoundError
from .models.job import Job, JobStatus, JobView
from .models.settings import CompressionSettings
from .utils.paths import move_to_trash, output_path_for
from .utils.settings import DEFAULT_SETTINGS
from .workers.encoder import EncodeOperation
from .workers.info_probe import MediaProbe, ProbeWorker
from .workers.slots import pick_admissible

logger = logging.getLogger(__name__)


@dataclass
class RunningOperation:
    """Links a processing job to its live process handle."""
    operation: object
    output_path: str
    settings: CompressionSettings


class Orchestrator(QObject):
    job_changed = Signal(str)
    jobs_changed = Signal()
    aggregate_changed = Signal(float)
    current_job_changed = Signal(object)  # job id or None
    batch_started = Signal()
    batch_finished = Signal()
    batch_stopped = Signal()
    admission_denied = Signal(str)
    line_out = Signal(str, str)

    _probe_requested = Signal(str, str, str)  # job_id, path, kind
    _encoders_requested = Signal(object)      # EncoderCapabilities

    def __init__(self, settings: CompressionSettings | None = None, config: dict | None = None,
                 capabilities: EncoderCapabilities | None = None, admission: AdmissionGate | None = None,
                 operation_factory=None, probe_worker: ProbeWorker | None = None, parent=None):
        super().__init__(parent)
        self.config = {**DEFAULT_SETTINGS, **(config or {})}
        self._settings = settings or CompressionSettings()
        self.capabilities = capabilities or EncoderCapabilities(
            self.config["ffmpeg_path"], int(self.config["capability_timeout"]))
        self.admission = admission or allow_all
        self._factory = operation_factory or self._make_operation

        self._jobs: dict[str, Job] = {}  # insertion order is submission order
        self._running: dict[str, RunningOperation] = {}
        self._held: set[str] = set()     # stopped one by one, skipped until next start()
        self._batch_active = False
        self._aggregate = 0.0
        self._current: str | None = None
        self._listing_encoders = False

        self._probe_thread: QThread | None = None
        if probe_worker is None:
            probe_worker = ProbeWorker(MediaProbe(self.config["ffprobe_path"], int(self.config["probe_timeout"])))
            self._probe_thread = QThread(self)
            probe_worker.moveToThread(self._probe_thread)
            self._probe_thread.start()
        self._probe_worker = probe_worker
        self._probe_requested.connect(probe_worker.probe)
        probe_worker.probed.connect(self._on_probed)
        self._encoders_requested.connect(probe_worker.list_encoders)
        probe_worker.encoders_listed.connect(self._on_encoders_listed)

    # read side

    @property
    def settings(self) -> CompressionSettings:
        return self._settings

    @property
    def is_running(self) -> bool:
        return self._batch_active

    @property
    def aggregate_progress(self) -> float:
        return self._aggregate

    @property
    def current_job_id(self) -> str | None:
        return self._current

    @property
    def active_count(self) -> int:
        return len(self._running)

    def jobs(self) -> list[JobView]:
        return [j.view() for j in self._jobs.values()]

    def job(self, job_id: str) -> JobView:
        return self._get(job_id).view()

    # commands

    def submit(self, paths) -> list[str]:
        ids = []
        for p in paths:
            job = Job(source_path=str(p))
            self._jobs[job.id] = job
            ids.append(job.id)
            self._probe_requested.emit(job.id, job.source_path, "original")
        if ids:
            logger.info("Queued %d file(s)", len(ids))
            self.jobs_changed.emit()
            self._recompute_aggregate()
            self._pump()
        return ids

    def remove(self, job_id: str) -> None:
        job = self._get(job_id)
        if job.status == JobStatus.PROCESSING:
            raise JobBusyError(job_id)
        del self._jobs[job_id]
        self._held.discard(job_id)
        self.jobs_changed.emit()
        self._recompute_aggregate()
        self._pump()

    def clear_all(self) -> int:
        idle = [j.id for j in self._jobs.values() if j.status != JobStatus.PROCESSING]
        for job_id in idle:
            del self._jobs[job_id]
            self._held.discard(job_id)
        if idle:
            self.jobs_changed.emit()
            self._recompute_aggregate()
            self._pump()
        return len(idle)

    def update_settings(self, **partial) -> CompressionSettings:
        if "compression_level" in partial:
            partial["compression_level"] = max(1, min(10, int(partial["compression_level"])))
        if "parallel_limit" in partial:
            partial["parallel_limit"] = max(1, int(partial["parallel_limit"]))
        old_limit = self._settings.parallel_limit
        self._settings = self._settings.updated(**partial)
        if self._settings.parallel_limit != old_limit:
            logger.info("Parallel limit %d -> %d", old_limit, self._settings.parallel_limit)
            self._pump()
        return self._settings

    def set_parallel_limit(self, n: int) -> None:
        self.update_settings(parallel_limit=n)

    def start(self) -> bool:
        if self._batch_active or not self._jobs:
            return False

        jobs = list(self._jobs.values())
        restart = all(j.status == JobStatus.COMPLETED for j in jobs)
        retry = [j for j in jobs if j.status == JobStatus.ERROR or (restart and j.status == JobStatus.COMPLETED)]
        runnable = sum(1 for j in jobs if j.status == JobStatus.QUEUED) + len(retry)
        if runnable == 0:
            return False

        decision = check(self.admission, runnable)
        if not decision.allowed:
            logger.info("Batch refused by admission gate: %s", decision.reason)
            self.admission_denied.emit(decision.reason)
            return False

        for job in retry:
            self._reset(job)
        self._held.clear()
        self._batch_active = True
        logger.info("Starting batch: %d job(s), %d at a time", runnable, self._settings.parallel_limit)
        self.batch_started.emit()
        self._recompute_aggregate()
        self._pump()
        return True

    def stop_one(self, job_id: str) -> bool:
        job = self._get(job_id)
        if job.status != JobStatus.PROCESSING:
            return False
        self._cancel(job)
        self._held.add(job_id)
        self._pump()
        self._update_current()
        return True

    def stop_all(self) -> int:
        stopped = [self._jobs[job_id] for job_id in list(self._running)]
        for job in stopped:
            self._cancel(job)
        self._held.clear()
        was_active, self._batch_active = self._batch_active, False
        self._update_current()
        if was_active:
            logger.info("Batch stopped, %d job(s) interrupted", len(stopped))
            self.batch_stopped.emit()
        return len(stopped)

    def shutdown(self) -> None:
        self.stop_all()
        if self._probe_thread is not None and self._probe_thread.isRunning():
            self._probe_thread.quit()
            self._probe_thread.wait(3000)

    # admission

    def _pump(self) -> None:
        if self._batch_active and self._candidates() and not self._encoders_ready():
            return
        # Re-evaluated after every launch: a start() may report back synchronously.
        while self._batch_active:
            picks = pick_admissible(self._candidates(), self._settings.parallel_limit, len(self._running))
            if not picks:
                break
            self._launch(self._jobs[picks[0]])
        if self._batch_active and not self._running and not self._candidates():
            self._finish_batch()

    def _candidates(self) -> list[str]:
        return [j.id for j in self._jobs.values() if j.status == JobStatus.QUEUED and j.id not in self._held]

    def _encoders_ready(self) -> bool:
        """AV1 plans need the encoder listing; ask the probe thread for it once."""
        if not needs_encoders(self._settings) or self.capabilities.known:
            return True
        if not self._listing_encoders:
            self._listing_encoders = True
            logger.debug("Listing ffmpeg encoders before the first AV1 launch")
            self._encoders_requested.emit(self.capabilities)
        return self.capabilities.known

    def _launch(self, job: Job) -> None:
        snapshot = self._settings
        output = str(output_path_for(job.source_path, snapshot))
        encoders = self.capabilities.encoders() if needs_encoders(snapshot) else frozenset()
        encode_plan = plan(job.source_path, output, snapshot, encoders)
        op = self._factory(job.id, job.source_path, encode_plan, self)
        self._running[job.id] = RunningOperation(op, output, snapshot)

        op.progress.connect(partial(self._on_progress, op))
        op.line_out.connect(partial(self._on_line, op))
        op.finished.connect(partial(self._on_finished, op))

        job.status = JobStatus.PROCESSING
        job.progress = 0.0
        job.output_path = job.output_size = job.error_message = None
        logger.info("Encoding %s with %s", job.name, encode_plan.encoder or "gif palette")
        self.job_changed.emit(job.id)
        self._update_current()
        op.start()

    def _make_operation(self, job_id: str, source_path: str, encode_plan: EncodePlan, parent) -> EncodeOperation:
        return EncodeOperation(job_id, source_path, encode_plan,
                               self.config["ffmpeg_path"], self.config["ffprobe_path"], parent=parent)

    def _owns(self, op, job_id: str) -> bool:
        run = self._running.get(job_id)
        return run is not None and run.operation is op

    # events from running operations

    def _on_progress(self, op, job_id: str, fraction: float) -> None:
        if not self._owns(op, job_id):
            return
        job = self._jobs[job_id]
        pct = fraction * 100.0
        if pct > job.progress:
            job.progress = pct
            self.job_changed.emit(job_id)

    def _on_line(self, op, job_id: str, line: str) -> None:
        if self._owns(op, job_id):
            self.line_out.emit(job_id, line)

    def _on_finished(self, op, job_id: str, exit_code: int, crashed: bool) -> None:
        if not self._owns(op, job_id):
            return
        run = self._running.pop(job_id)
        op.deleteLater()
        job = self._jobs[job_id]

        if exit_code == 0 and not crashed:
            job.status = JobStatus.COMPLETED
            job.progress = 100.0
            job.output_path = run.output_path
            logger.info("Finished %s -> %s", job.name, run.output_path)
            self._probe_requested.emit(job_id, run.output_path, "output")
            if run.settings.move_to_trash and not move_to_trash(job.source_path):
                logger.error("Keeping original of %s, trash move failed", job.name)
        else:
            tail = list(getattr(op, "tail", ()))
            reason = "terminated by signal" if crashed else f"exited with code {exit_code}"
            job.status = JobStatus.ERROR
            job.progress = 0.0
            job.error_message = tail[-1] if tail else f"ffmpeg {reason}"
            logger.error("Encoding %s failed: ffmpeg %s", job.name, reason)

        self.job_changed.emit(job_id)
        self._recompute_aggregate()
        self._pump()
        self._update_current()

    def _on_encoders_listed(self, names) -> None:
        self.capabilities.remember(names)
        self._listing_encoders = False
        self._pump()

    def _on_probed(self, job_id: str, kind: str, size: int) -> None:
        if not (job := self._jobs.get(job_id)):
            return
        if kind == "original":
            job.original_size = size
        elif kind == "output" and job.status == JobStatus.COMPLETED:
            job.output_size = size
        else:
            return
        self.job_changed.emit(job_id)

    # helpers

    def _get(self, job_id: str) -> Job:
        if (job := self._jobs.get(job_id)) is None:
            raise JobNotFoundError(job_id)
        return job

    def _cancel(self, job: Job) -> None:
        run = self._running.pop(job.id)
        run.operation.kill()
        job.status = JobStatus.STOPPED
        logger.info("Stopped %s", job.name)
        self._reset(job)

    def _reset(self, job: Job) -> None:
        job.status = JobStatus.QUEUED
        job.progress = 0.0
        job.output_path = job.output_size = job.error_message = None
        self.job_changed.emit(job.id)

    def _finish_batch(self) -> None:
        self._batch_active = False
        self._held.clear()
        done = sum(1 for j in self._jobs.values() if j.status == JobStatus.COMPLETED)
        logger.info("Batch finished: %d/%d completed", done, len(self._jobs))
        self.batch_finished.emit()

    def _recompute_aggregate(self) -> None:
        total = len(self._jobs)
        done = sum(1 for j in self._jobs.values() if j.status.is_terminal)
        value = done / total * 100 if total else 0.0
        if value != self._aggregate:
            self._aggregate = value
            self.aggregate_changed.emit(value)

    def _update_current(self) -> None:
        current = next(iter(self._running), None)
        if current != self._current:
            self._current = current
            self.current_job_changed.emit(current)
