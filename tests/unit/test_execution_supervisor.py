import asyncio
import time

import pytest

from agent_pipeline.errors import ProcessStartupError, ProcessStartupTimeoutError
from agent_pipeline.execution.supervisor import ProcessSupervisor, SessionState

READY_THEN_SLEEP = "import time; print('Server listening on port 3001', flush=True); time.sleep(30)"
SILENT_SLEEP = "import time; time.sleep(30)"


@pytest.mark.asyncio
async def test_start_resolves_on_ready_marker_and_stop_terminates(child_command) -> None:
    supervisor = ProcessSupervisor(child_command(READY_THEN_SLEEP), startup_timeout_s=10)

    await supervisor.start()
    try:
        assert supervisor.state is SessionState.RUNNING
        assert supervisor.pid is not None
    finally:
        await supervisor.stop()

    assert supervisor.state is SessionState.STOPPED
    assert supervisor.pid is None


@pytest.mark.asyncio
async def test_start_is_noop_when_running(child_command) -> None:
    supervisor = ProcessSupervisor(child_command(READY_THEN_SLEEP), startup_timeout_s=10)

    try:
        await asyncio.gather(supervisor.start(), supervisor.start())
        pid = supervisor.pid
        await supervisor.start()

        assert supervisor.start_count == 1
        assert supervisor.pid == pid
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_stderr_output_before_ready_fails_startup(child_command) -> None:
    script = "import sys, time; sys.stderr.write('port already in use\\n'); sys.stderr.flush(); time.sleep(30)"
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10)

    with pytest.raises(ProcessStartupError) as exc_info:
        await supervisor.start()

    assert "port already in use" in str(exc_info.value)
    assert not isinstance(exc_info.value, ProcessStartupTimeoutError)
    assert supervisor.state is SessionState.START_FAILED
    assert supervisor.pid is None


@pytest.mark.asyncio
async def test_exit_before_ready_fails_startup(child_command) -> None:
    supervisor = ProcessSupervisor(child_command("import sys; sys.exit(3)"), startup_timeout_s=10)

    with pytest.raises(ProcessStartupError) as exc_info:
        await supervisor.start()

    assert "exited with code 3" in str(exc_info.value)
    assert supervisor.state is SessionState.START_FAILED


@pytest.mark.asyncio
async def test_long_output_line_before_marker_does_not_hide_readiness(child_command) -> None:
    script = (
        "import sys, time; sys.stdout.write('x' * 100000 + '\\n'); "
        "print('Listening on http://localhost:1', flush=True); time.sleep(30)"
    )
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10)

    try:
        await supervisor.start()

        assert supervisor.state is SessionState.RUNNING
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_line_over_reader_limit_is_skipped_and_reading_continues(child_command) -> None:
    script = (
        "import sys, time; sys.stdout.write('x' * 3000000 + '\\n'); "
        "print('ready', flush=True); time.sleep(30)"
    )
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10)

    try:
        await supervisor.start()

        assert supervisor.state is SessionState.RUNNING
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_output_keeps_draining_after_ready(child_command) -> None:
    script = (
        "import sys; print('ready', flush=True); "
        "sys.stdout.write(('y' * 3000000 + '\\n') * 2); sys.stdout.flush()"
    )
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10)
    await supervisor.start()

    for _ in range(200):
        if supervisor.state is SessionState.STOPPED:
            break
        await asyncio.sleep(0.05)

    assert supervisor.state is SessionState.STOPPED
    await supervisor.stop()


@pytest.mark.asyncio
async def test_missing_executable_fails_startup() -> None:
    supervisor = ProcessSupervisor(["/nonexistent/agent-pipeline-server"], startup_timeout_s=1)

    with pytest.raises(ProcessStartupError):
        await supervisor.start()

    assert supervisor.state is SessionState.START_FAILED


@pytest.mark.asyncio
async def test_timeout_reports_installed_tool(child_command) -> None:
    supervisor = ProcessSupervisor(
        child_command(SILENT_SLEEP),
        startup_timeout_s=0.3,
        install_check_command=child_command("print('Version 1.52.0')"),
    )

    with pytest.raises(ProcessStartupTimeoutError) as exc_info:
        await supervisor.start()

    assert exc_info.value.installed is True
    assert exc_info.value.timeout_s == 0.3
    assert "npm install" not in str(exc_info.value)
    assert supervisor.state is SessionState.START_FAILED
    assert supervisor.pid is None


@pytest.mark.asyncio
async def test_timeout_suggests_install_when_install_check_fails(child_command) -> None:
    supervisor = ProcessSupervisor(
        child_command(SILENT_SLEEP),
        startup_timeout_s=0.3,
        install_check_command=child_command("import sys; print('not found'); sys.exit(1)"),
    )

    with pytest.raises(ProcessStartupTimeoutError) as exc_info:
        await supervisor.start()

    assert exc_info.value.installed is False
    assert "npm install @playwright/mcp" in str(exc_info.value)


@pytest.mark.asyncio
async def test_timeout_without_install_check_leaves_installation_unknown(child_command) -> None:
    supervisor = ProcessSupervisor(child_command(SILENT_SLEEP), startup_timeout_s=0.3)

    with pytest.raises(ProcessStartupTimeoutError) as exc_info:
        await supervisor.start()

    assert exc_info.value.installed is None


@pytest.mark.asyncio
async def test_stop_force_kills_after_grace_period(child_command) -> None:
    script = (
        "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); "
        "print('ready', flush=True); time.sleep(30)"
    )
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10, stop_grace_s=0.2)
    await supervisor.start()

    started = time.monotonic()
    await supervisor.stop()

    assert supervisor.state is SessionState.STOPPED
    assert time.monotonic() - started < 5


@pytest.mark.asyncio
async def test_unexpected_exit_after_ready_marks_stopped(child_command) -> None:
    script = "import time; print('ready', flush=True); time.sleep(0.2)"
    supervisor = ProcessSupervisor(child_command(script), startup_timeout_s=10)
    await supervisor.start()

    for _ in range(100):
        if supervisor.state is SessionState.STOPPED:
            break
        await asyncio.sleep(0.05)

    assert supervisor.state is SessionState.STOPPED
    await supervisor.stop()


@pytest.mark.asyncio
async def test_stop_without_start_is_noop(child_command) -> None:
    supervisor = ProcessSupervisor(child_command(SILENT_SLEEP))

    await supervisor.stop()

    assert supervisor.state is SessionState.STOPPED
    assert supervisor.start_count == 0


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError):
        ProcessSupervisor([])
