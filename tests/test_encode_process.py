"""Runs EncodeOperation and the orchestrator against stand-in ffmpeg/ffprobe scripts."""
import os
import sys
import textwrap
import time

import pytest

from conftest import live_children, wait_until
from vlite.encoding.capabilities import EncoderCapabilities
from vlite.encoding.planner import plan
from vlite.models.job import JobStatus
from vlite.models.settings import CompressionSettings
from vlite.orchestrator import Orchestrator
from vlite.workers.encoder import EncodeOperation

pytestmark = [
    pytest.mark.process,
    pytest.mark.skipif(os.name != "posix", reason="stand-in engines are shebang scripts"),
]

# The source file's content tells the stand-in what to do: ok, fail or hang.
FAKE_FFMPEG = textwrap.dedent("""
    import sys, time
    args = sys.argv[1:]
    if "-encoders" in args:
        time.sleep(2)
        print(" V....D libvpx-vp9           libvpx VP9 (codec vp9)")
        print(" V....D libsvtav1            SVT-AV1 encoder (codec av1)")
        sys.exit(0)
    with open(args[args.index("-i") + 1]) as f:
        mode = f.read().strip()
    for i in range(1, 4):
        sys.stderr.write(f"frame={i} fps=30 q=28.0 size=1kB time=00:00:0{i}.00 bitrate=1k speed=1x\\r")
        sys.stderr.flush()
        time.sleep(0.05)
    if mode == "fail":
        sys.stderr.write("\\nclip: Invalid data found when processing input\\n")
        sys.exit(1)
    if mode == "hang":
        time.sleep(60)
    with open(args[-1], "wb") as f:
        f.write(b"x" * 10)
""")

FAKE_FFPROBE = textwrap.dedent("""
    import os, sys
    if "format=duration" in sys.argv:
        print("4.000000")
    else:
        print(os.path.getsize(sys.argv[-1]))
""")


def _script(path, body):
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return str(path)


@pytest.fixture
def engine(tmp_path):
    return {
        "ffmpeg_path": _script(tmp_path / "ffmpeg", FAKE_FFMPEG),
        "ffprobe_path": _script(tmp_path / "ffprobe", FAKE_FFPROBE),
    }


def _source(tmp_path, name, mode):
    p = tmp_path / name
    p.write_text(mode)
    return str(p)


def _run_operation(engine, source, output):
    op = EncodeOperation("job-1", source, plan(source, output, CompressionSettings()),
                         engine["ffmpeg_path"], engine["ffprobe_path"])
    progress, finished = [], []
    op.progress.connect(lambda _id, frac: progress.append(frac))
    op.finished.connect(lambda *a: finished.append(a))
    op.start()
    assert wait_until(lambda: finished, timeout=15)
    return op, progress, finished


def test_successful_encode_reports_progress(engine, tmp_path):
    source = _source(tmp_path, "ok.mov", "ok")
    output = str(tmp_path / "ok_compressed.mp4")

    op, progress, finished = _run_operation(engine, source, output)

    assert finished == [("job-1", 0, False)]
    assert op.duration == pytest.approx(4.0)
    assert progress == pytest.approx([0.25, 0.5, 0.75])
    assert os.path.getsize(output) == 10


def test_failed_encode_keeps_engine_message(engine, tmp_path):
    source = _source(tmp_path, "bad.mov", "fail")

    op, _, finished = _run_operation(engine, source, str(tmp_path / "bad_compressed.mp4"))

    assert finished == [("job-1", 1, False)]
    assert op.tail[-1] == "clip: Invalid data found when processing input"


def test_missing_engine_fails_the_job(tmp_path, engine):
    source = _source(tmp_path, "ok.mov", "ok")
    engine = {**engine, "ffmpeg_path": str(tmp_path / "missing-ffmpeg")}

    _, _, finished = _run_operation(engine, source, str(tmp_path / "out.mp4"))

    assert finished == [("job-1", -1, False)]


def test_batch_runs_to_completion(engine, tmp_path):
    sources = [_source(tmp_path, f"clip{i}.mov", "fail" if i == 2 else "ok") for i in range(3)]
    orch = Orchestrator(CompressionSettings(parallel_limit=2), engine, EncoderCapabilities.fixed())
    try:
        ids = orch.submit(sources)
        assert orch.start()
        assert wait_until(lambda: not orch.is_running, timeout=20)
        assert wait_until(lambda: orch.job(ids[0]).compressed_size == 10)

        assert [orch.job(i).status for i in ids] == [JobStatus.COMPLETED, JobStatus.COMPLETED, JobStatus.ERROR]
        assert orch.aggregate_progress == 100.0
        assert orch.job(ids[0]).original_size == 2
    finally:
        orch.shutdown()


def test_stop_all_kills_running_engines(engine, tmp_path):
    sources = [_source(tmp_path, f"long{i}.mov", "hang") for i in range(2)]
    orch = Orchestrator(CompressionSettings(parallel_limit=2), engine, EncoderCapabilities.fixed())
    try:
        ids = orch.submit(sources)
        orch.start()
        assert wait_until(lambda: all(orch.job(i).progress > 0 for i in ids), timeout=15)

        assert orch.stop_all() == 2

        deadline = time.monotonic() + 0.5
        wait_until(lambda: time.monotonic() > deadline)
        assert [orch.job(i).status for i in ids] == [JobStatus.QUEUED, JobStatus.QUEUED]
        assert all(orch.job(i).progress == 0.0 for i in ids)
    finally:
        orch.shutdown()


def test_batches_leave_no_operations_behind(engine, tmp_path):
    orch = Orchestrator(CompressionSettings(parallel_limit=2), engine, EncoderCapabilities.fixed())
    try:
        for round_ in range(3):
            sources = [_source(tmp_path, f"r{round_}_{i}.mov", "ok") for i in range(4)]
            orch.submit(sources)
            assert orch.start()
            assert wait_until(lambda: not orch.is_running, timeout=20)
            assert wait_until(lambda: live_children(orch, EncodeOperation) == [])
            orch.clear_all()
    finally:
        orch.shutdown()


def test_stopped_operations_are_released(engine, tmp_path):
    orch = Orchestrator(CompressionSettings(parallel_limit=2), engine, EncoderCapabilities.fixed())
    try:
        ids = orch.submit([_source(tmp_path, f"long{i}.mov", "hang") for i in range(2)])
        orch.start()
        assert wait_until(lambda: all(orch.job(i).progress > 0 for i in ids), timeout=15)

        orch.stop_all()

        assert wait_until(lambda: live_children(orch, EncodeOperation) == [], timeout=15)
    finally:
        orch.shutdown()


def test_encoder_listing_does_not_block_start(engine, tmp_path):
    orch = Orchestrator(CompressionSettings(use_high_efficiency_codec=True), engine)
    try:
        ids = orch.submit([_source(tmp_path, "clip.mov", "ok")])

        began = time.monotonic()
        assert orch.start()
        assert time.monotonic() - began < 1.0
        assert orch.job(ids[0]).status == JobStatus.QUEUED

        assert wait_until(lambda: not orch.is_running, timeout=20)
        assert orch.job(ids[0]).status == JobStatus.COMPLETED
        assert orch.capabilities.supports("libsvtav1")
    finally:
        orch.shutdown()


def test_safe_codec_batch_skips_encoder_listing(engine, tmp_path):
    orch = Orchestrator(CompressionSettings(), engine)
    try:
        orch.submit([_source(tmp_path, "clip.mov", "ok")])
        began = time.monotonic()
        orch.start()
        assert time.monotonic() - began < 1.0

        assert wait_until(lambda: not orch.is_running, timeout=20)
        assert not orch.capabilities.known
    finally:
        orch.shutdown()
