import pytest

from stepflow.errors import ProcessLaunchError
from stepflow.process import AsyncioProcessRunner, OutputChunk, ProcessExit, collect_output


@pytest.mark.asyncio
async def test_output_and_exit_code():
    runner = AsyncioProcessRunner()

    output, exit_code = await collect_output(
        runner.submit("/bin/sh", ["-c", "echo out; echo err >&2; exit 3"])
    )

    assert output == "out\nerr\n"
    assert exit_code == 3


@pytest.mark.asyncio
async def test_environment_and_working_directory(tmp_path):
    runner = AsyncioProcessRunner()

    output, exit_code = await collect_output(
        runner.submit(
            "/bin/sh",
            ["-c", 'echo "$GREETING"; pwd -P'],
            working_directory=str(tmp_path),
            environment={"GREETING": "hello"},
        )
    )

    assert exit_code == 0
    assert output.splitlines() == ["hello", str(tmp_path.resolve())]


@pytest.mark.asyncio
async def test_stream_ends_with_exit_event():
    runner = AsyncioProcessRunner()

    events = [event async for event in runner.submit("/bin/sh", ["-c", "printf abc"])]

    assert events[-1] == ProcessExit(0)
    assert "".join(e.data for e in events if isinstance(e, OutputChunk)) == "abc"


@pytest.mark.asyncio
async def test_missing_executable():
    runner = AsyncioProcessRunner()

    with pytest.raises(ProcessLaunchError):
        await collect_output(runner.submit("/definitely/not/here", []))


@pytest.mark.asyncio
async def test_stream_without_exit_status_is_an_error():
    async def truncated():
        yield OutputChunk("partial")

    with pytest.raises(ProcessLaunchError):
        await collect_output(truncated())
