"""Unit tests for CompileJob using fake pdflatex/gs executables."""

import time

import pytest

from texsnip.contexts.compilation import (
    ZERO_BOX,
    BoundingBox,
    CompileJob,
    CompileRequest,
    JobState,
    set_paths,
)

TIMEOUT = 15

SIMPLE_SOURCE = "\\documentclass{article}\n\\begin{document}\n$x$\n\\end{document}\n"


def source_with(*directives: str) -> str:
    return SIMPLE_SOURCE + "".join(f"{directive}\n" for directive in directives)


@pytest.mark.unit
def test_successful_chain(make_job, fake_tex):
    """Test typeset -> measure -> success with the parsed box."""
    job = make_job()
    handle = job.start(SIMPLE_SOURCE)
    outcome = handle.result(timeout=TIMEOUT)

    assert outcome.success
    assert outcome.request == handle.request
    assert outcome.pdf_path.exists()
    assert outcome.pdf_path.name.endswith(".pdf")
    assert outcome.bbox == BoundingBox(10.0, 20.0, 100.0, 50.0)
    assert outcome.errors == ()
    assert not job.running()
    assert job.state is JobState.IDLE
    assert fake_tex.spawns("latex") == 1
    assert fake_tex.spawns("gs") == 1


@pytest.mark.unit
def test_produced_pdf_named_after_source(make_job, fake_tex):
    """Test that the PDF path is the temporary source path plus .pdf."""
    job = make_job()
    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    source_name = outcome.pdf_path.name[: -len(".pdf")]
    assert source_name.startswith("texsnip")
    assert outcome.pdf_path.parent == fake_tex.work_dir


@pytest.mark.unit
def test_success_cleanup_keeps_only_pdf(make_job, fake_tex):
    """Test that sources, logs and aux files are removed but the PDF is kept."""
    job = make_job()
    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    assert fake_tex.leftovers() == [outcome.pdf_path]
    assert job.artifacts == {outcome.pdf_path}


@pytest.mark.unit
def test_release_artifact_and_close(make_job, fake_tex):
    """Test that kept PDFs are deleted on release or close."""
    job = make_job()
    first = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)
    second = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    job.release_artifact(first.pdf_path)
    assert not first.pdf_path.exists()
    assert second.pdf_path.exists()

    job.close()
    assert fake_tex.leftovers() == []
    assert job.artifacts == set()


@pytest.mark.unit
def test_listener_receives_single_outcome(make_job, wait_until):
    """Test that every chain emits exactly one outcome to listeners."""
    job = make_job()
    received = []
    job.connect(received.append)

    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    assert wait_until(lambda: len(received) == 1)
    time.sleep(0.2)
    assert received == [outcome]


@pytest.mark.unit
def test_disconnected_listener_not_called(make_job):
    """Test listener removal."""
    job = make_job()
    received = []
    job.connect(received.append)
    job.disconnect(received.append)

    job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)
    time.sleep(0.2)

    assert received == []


@pytest.mark.unit
def test_running_while_typesetting(make_job):
    """Test state reporting while the typesetter is still running."""
    job = make_job()
    handle = job.start(source_with("%delay=1.5"))

    assert job.running()
    assert job.state is JobState.TYPESETTING
    assert not handle.done()

    assert handle.result(timeout=TIMEOUT).success
    assert not job.running()


@pytest.mark.unit
def test_missing_measurement_is_still_success(make_job):
    """Test that an unparseable measurer output yields success with a zero box."""
    job = make_job()
    outcome = job.start(source_with("%bbox=none")).result(timeout=TIMEOUT)

    assert outcome.success
    assert outcome.bbox is ZERO_BOX
    assert outcome.pdf_path.exists()


@pytest.mark.unit
def test_typesetting_failure(make_job, fake_tex):
    """Test that no PDF means failure, with errors collected and all files removed."""
    job = make_job()
    outcome = job.start(source_with("%fail")).result(timeout=TIMEOUT)

    assert not outcome.success
    assert outcome.pdf_path is None
    assert outcome.bbox is ZERO_BOX
    assert outcome.errors == ("Undefined control sequence.",)
    assert fake_tex.spawns("gs") == 0
    assert fake_tex.leftovers() == []


@pytest.mark.unit
def test_kill_running_chain(make_job, fake_tex, wait_until):
    """Test that kill emits one failure synchronously and removes every file."""
    job = make_job()
    received = []
    job.connect(received.append)
    handle = job.start(source_with("%delay=10"))
    assert wait_until(lambda: fake_tex.spawns("latex") == 1)

    job.kill()

    assert handle.done()
    outcome = handle.result()
    assert not outcome.success
    assert outcome.pdf_path is None
    assert outcome.bbox is ZERO_BOX
    assert received == [outcome]
    assert not job.running()
    assert wait_until(lambda: fake_tex.leftovers() == [])

    time.sleep(0.3)
    assert received == [outcome]
    assert fake_tex.spawns("gs") == 0


@pytest.mark.unit
def test_kill_idle_emits_nothing(make_job):
    """Test that kill without an attached chain is silent."""
    job = make_job()
    received = []
    job.connect(received.append)

    job.kill()
    job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)
    received.clear()
    job.kill()

    assert received == []


@pytest.mark.unit
def test_start_while_running_returns_attached_handle(make_job, fake_tex):
    """Test that start() does not launch a second chain while one is attached."""
    job = make_job()
    first = job.start(source_with("%delay=1"))
    second = job.start(SIMPLE_SOURCE)

    assert second is first
    assert job.chains_started == 1
    assert first.result(timeout=TIMEOUT).success
    assert fake_tex.spawns("latex") == 1


@pytest.mark.unit
def test_restart_supersedes_running_chain(make_job, fake_tex, wait_until):
    """Test that a restarted chain's result wins and the old one reports failure."""
    job = make_job()
    received = []
    job.connect(received.append)

    first = job.start(source_with("%delay=3", "%bbox=0 0 50 50"))
    assert wait_until(lambda: fake_tex.spawns("latex") == 1)
    second = job.restart(source_with("%bbox=10 20 110 70"))
    outcome = second.result(timeout=TIMEOUT)

    assert not first.result().success
    assert outcome.success
    assert outcome.bbox == BoundingBox(10.0, 20.0, 100.0, 50.0)
    assert second.request.generation > first.request.generation

    # Let the killed typesetter's original deadline pass
    time.sleep(3.5)
    assert [o.request.generation for o in received] == [
        first.request.generation,
        second.request.generation,
    ]
    assert fake_tex.leftovers() == [outcome.pdf_path]


@pytest.mark.unit
def test_restart_when_idle_behaves_like_start(make_job):
    """Test restart without an attached chain."""
    job = make_job()
    received = []
    job.connect(received.append)

    outcome = job.restart(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    assert outcome.success
    time.sleep(0.2)
    assert received == [outcome]


@pytest.mark.unit
def test_request_record_travels_with_chain(make_job):
    """Test that a caller-supplied request comes back on the outcome."""
    job = make_job()
    request = job.next_request(tag=42)
    outcome = job.start(SIMPLE_SOURCE, request).result(timeout=TIMEOUT)

    assert outcome.request is request
    assert outcome.request.tag == 42
    assert job.next_request().generation > request.generation


@pytest.mark.unit
def test_temp_file_failure_is_immediate(fake_tex, tmp_path):
    """Test that an unusable working directory fails without spawning anything."""
    job = CompileJob(working_dir=tmp_path / "does_not_exist")
    received = []
    job.connect(received.append)

    handle = job.start(SIMPLE_SOURCE, CompileRequest(generation=7, tag=1))

    assert handle.done()
    outcome = handle.result()
    assert not outcome.success
    assert outcome.pdf_path is None
    assert outcome.bbox is ZERO_BOX
    assert received == [outcome]
    assert not job.running()
    assert fake_tex.spawns("latex") == 0


@pytest.mark.unit
def test_missing_typesetter_fails(make_job, fake_tex, tmp_path):
    """Test that a typesetter that cannot be executed reports failure."""
    set_paths(tmp_path / "no_such_pdflatex", fake_tex.ghostscript, check=lambda *_: True)
    job = make_job()

    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    assert not outcome.success
    assert not job.running()
    assert fake_tex.leftovers() == []


@pytest.mark.unit
def test_missing_measurer_keeps_pdf(make_job, fake_tex, tmp_path):
    """Test that a measurer that cannot be executed still yields the PDF."""
    set_paths(fake_tex.latex, tmp_path / "no_such_gs", check=lambda *_: True)
    job = make_job()

    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)

    assert outcome.success
    assert outcome.bbox is ZERO_BOX
    assert fake_tex.leftovers() == [outcome.pdf_path]


@pytest.mark.unit
def test_raising_listener_does_not_block_others(make_job, fake_tex, wait_until):
    """Test that every listener is called even when an earlier one raises."""
    job = make_job()
    received = []

    def broken(outcome):
        raise RuntimeError("listener failure")

    job.connect(broken)
    job.connect(received.append)

    outcome = job.start(SIMPLE_SOURCE).result(timeout=TIMEOUT)
    assert wait_until(lambda: received == [outcome])

    handle = job.start(source_with("%delay=10"))
    assert wait_until(lambda: fake_tex.spawns("latex") == 2)
    job.kill()

    assert received == [outcome, handle.result()]
    assert not job.running()
