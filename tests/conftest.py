import time
from collections import deque

import pytest
from PySide6.QtCore import QCoreApplication, QEvent, QObject, Signal

from vlite.encoding.capabilities import EncoderCapabilities
from vlite.models.settings import CompressionSettings
from vlite.orchestrator import Orchestrator
from vlite.workers.info_probe import ProbeWorker


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def wait_until(predicate, timeout: float = 10.0) -> bool:
    """Spin the Qt event loop until predicate() holds or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        QCoreApplication.processEvents()
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def live_children(parent, cls) -> list:
    """Children of `cls` still alive once pending deleteLater() calls have run."""
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)
    return parent.findChildren(cls)


class FakeOperation(QObject):
    """Stands in for EncodeOperation; the test decides when things happen."""
    progress = Signal(str, float)
    line_out = Signal(str, str)
    finished = Signal(str, int, bool)

    def __init__(self, job_id, source_path, plan, parent=None):
        super().__init__(parent)
        self.job_id = job_id
        self.source_path = source_path
        self.plan = plan
        self.started = False
        self.killed = False
        self.tail = deque(maxlen=20)

    def start(self):
        self.started = True

    def kill(self):
        self.killed = True

    def report(self, fraction: float):
        self.progress.emit(self.job_id, fraction)

    def say(self, line: str):
        self.tail.append(line)
        self.line_out.emit(self.job_id, line)

    def finish(self, code: int = 0, crashed: bool = False):
        self.finished.emit(self.job_id, code, crashed)


class FakeFactory:
    def __init__(self):
        self.launched: list[FakeOperation] = []

    def __call__(self, job_id, source_path, plan, parent):
        op = FakeOperation(job_id, source_path, plan, parent)
        self.launched.append(op)
        return op

    def latest(self, job_id) -> FakeOperation:
        return [op for op in self.launched if op.job_id == job_id][-1]


class FakeMediaProbe:
    def __init__(self, sizes=None, default=1000):
        self.sizes = dict(sizes or {})
        self.default = default
        self.calls = []

    def size(self, path):
        self.calls.append(path)
        return self.sizes.get(path, self.default)


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def media_probe():
    return FakeMediaProbe()


@pytest.fixture
def make_orchestrator(factory, media_probe):
    created = []

    def _make(admission=None, encoders=(), capabilities=None, **settings):
        orch = Orchestrator(
            settings=CompressionSettings().updated(**settings),
            capabilities=capabilities or EncoderCapabilities.fixed(encoders),
            admission=admission,
            operation_factory=factory,
            probe_worker=ProbeWorker(media_probe),
        )
        created.append(orch)
        return orch

    yield _make
    for orch in created:
        orch.shutdown()
    # Flush pending deleteLater() calls while their parent is still alive.
    QCoreApplication.sendPostedEvents(None, QEvent.Type.DeferredDelete)
