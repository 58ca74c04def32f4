import asyncio
import os
import time

import pytest

from assessment.core.errors import SandboxUnavailable
from assessment.models.schemas import CodeTestCase, ExecutionStatus
from assessment.services.sandbox import CLONE_NEWNET, CLONE_NEWUSER, SandboxExecutor, _isolate, outputs_match
from assessment.services.sandbox_harness import parse_arguments

REVERSE = "def solution(s):\n    return s[::-1]\n"


@pytest.fixture
def sandbox(settings):
    return SandboxExecutor(settings)


async def test_returns_repr_of_result(sandbox):
    result = await sandbox.run(REVERSE, '"hello"')
    assert result.status == ExecutionStatus.OK
    assert result.output == "'olleh'"
    assert sandbox.inflight == 0


async def test_captures_printed_output(sandbox):
    result = await sandbox.run("def solution(a, b):\n    print('adding')\n    return a + b\n", "[1], [2]")
    assert result.output == "[1, 2]"
    assert result.stdout == "adding\n"


async def test_exception_is_a_logical_failure(sandbox):
    result = await sandbox.run("def solution():\n    raise ValueError('nope')\n")
    assert result.status == ExecutionStatus.ERROR
    assert "ValueError: nope" in result.error


async def test_missing_entry_point(sandbox):
    result = await sandbox.run("def other():\n    return 1\n")
    assert result.status == ExecutionStatus.ERROR
    assert "solution" in result.error


async def test_infinite_loop_times_out(sandbox):
    started = time.monotonic()
    result = await sandbox.run("def solution():\n    while True:\n        pass\n", time_limit=0.5)
    assert result.status == ExecutionStatus.TIMEOUT
    assert time.monotonic() - started < 0.5 + sandbox.grace + 2


async def test_state_does_not_leak_between_runs(sandbox):
    tamper = "import math\ndef solution():\n    math.pi = 3\n    global SEEN\n    SEEN = True\n    return math.pi\n"
    assert (await sandbox.run(tamper)).output == "3"
    check = "import math\ndef solution():\n    return (math.pi, 'SEEN' in globals())\n"
    assert (await sandbox.run(check)).output == "(3.141592653589793, False)"


@pytest.mark.parametrize("code", [
    "def solution():\n    return open('/etc/passwd').read()\n",
    "def solution():\n    open('scratch.txt', 'w').write('x')\n",
    "import socket\ndef solution():\n    return socket.gethostname()\n",
    "import subprocess\ndef solution():\n    return subprocess.run(['id']).returncode\n",
    "import os\ndef solution():\n    return os.system('id')\n",
    "import os\ndef solution():\n    return os.listdir('/')\n",
])
async def test_ambient_capabilities_are_denied(sandbox, code):
    result = await sandbox.run(code)
    assert result.status == ExecutionStatus.ERROR


TAMPER_THEN_READ = """
import builtins, os
def solution():
    builtins.any = lambda *a: True
    os.getcwd = lambda: os.path.dirname(os.__file__)
    os.path.normpath = lambda p: os.__file__
    os.path.join = lambda *p: os.__file__
    return open("/etc/hostname").read()
"""


@pytest.mark.parametrize("code", [
    "import __main__\ndef solution():\n    __main__._within = lambda p, r: True\n    return open('/etc/hostname').read()\n",
    "import sys\ndef solution():\n    return sorted(vars(sys.modules['__main__']))\n",
    "import sys\ndef solution():\n    return sorted(sys._getframe().f_back.f_globals)\n",
    "def solution():\n    try:\n        open('/etc/hostname')\n    except PermissionError as e:\n        return sorted(e.__traceback__.tb_frame.f_locals)\n",
    "import gc\ndef solution():\n    return len(gc.get_objects())\n",
    "import sys\ndef solution():\n    sys.setprofile(lambda *a: None)\n    return 1\n",
    TAMPER_THEN_READ,
])
async def test_guard_cannot_be_switched_off_from_inside(sandbox, code):
    result = await sandbox.run(code)
    assert result.status == ExecutionStatus.ERROR


async def test_stdlib_helpers_still_work_without_frames(sandbox):
    code = "from collections import namedtuple\ndef solution():\n    Point = namedtuple('Point', 'x y')\n    return Point(1, 2).y\n"
    result = await sandbox.run(code)
    assert result.status == ExecutionStatus.OK
    assert result.output == "2"


async def test_memory_quota(sandbox):
    result = await sandbox.run("def solution():\n    block = bytearray(1024 * 1024 * 1024)\n    return len(block)\n")
    assert result.status != ExecutionStatus.OK
    assert (await sandbox.run(REVERSE, '"ok"')).output == "'ko'"


@pytest.mark.parametrize("code", [
    "import os\ndef solution():\n    return os.fork()\n",
    "import posix\ndef solution():\n    return posix.fork()\n",
])
async def test_cannot_fork(sandbox, code):
    result = await sandbox.run(code)
    assert result.status == ExecutionStatus.ERROR
    assert "fork" in result.error
    assert (await sandbox.run(REVERSE, '"ok"')).output == "'ko'"


async def test_truncated_output_never_passes(sandbox):
    case = CodeTestCase(input="", output="1" + "0" * (sandbox.max_output - 1))
    result = await sandbox.execute_case("def solution():\n    return 10 ** 4200\n", case)
    assert not result.passed
    assert result.status == ExecutionStatus.RESOURCE_LIMIT
    assert result.error == "output limit exceeded"


def test_isolate_falls_back_to_network_namespace(monkeypatch):
    calls = []

    def unshare(flags):
        calls.append(flags)
        if flags & CLONE_NEWUSER:
            raise PermissionError("user namespaces disabled")

    monkeypatch.setattr(os, "unshare", unshare, raising=False)
    assert _isolate(required=True)
    assert calls == [CLONE_NEWUSER | CLONE_NEWNET, CLONE_NEWNET]


def test_isolate_without_namespaces(monkeypatch):
    def unshare(flags):
        raise PermissionError("not permitted")

    monkeypatch.setattr(os, "unshare", unshare, raising=False)
    assert _isolate(required=False) is False
    with pytest.raises(OSError):
        _isolate(required=True)


async def test_required_isolation_is_infrastructure_error(settings, monkeypatch):
    def unshare(flags):
        raise PermissionError("not permitted")

    monkeypatch.setattr(os, "unshare", unshare, raising=False)
    strict = SandboxExecutor(settings.model_copy(update={"SANDBOX_REQUIRE_ISOLATION": True}))
    with pytest.raises(SandboxUnavailable):
        await strict.run(REVERSE, '"x"')


async def test_environment_is_empty(sandbox):
    result = await sandbox.run("import os\ndef solution():\n    return [k for k in ('PATH', 'HOME', 'APP_SECRET') if k in os.environ]\n")
    assert result.output == "[]"


async def test_concurrent_runs(sandbox):
    results = await asyncio.gather(*(sandbox.run("def solution(n):\n    return n * n\n", str(n)) for n in range(6)))
    assert [r.output for r in results] == [str(n * n) for n in range(6)]


async def test_missing_interpreter_is_infrastructure_error(settings):
    broken = SandboxExecutor(settings, python="/nonexistent/python3")
    with pytest.raises(SandboxUnavailable):
        await broken.run(REVERSE, '"x"')


async def test_broken_harness_is_infrastructure_error(settings, tmp_path):
    broken = SandboxExecutor(settings, harness_path=str(tmp_path / "missing_harness.py"))
    with pytest.raises(SandboxUnavailable):
        await broken.run(REVERSE, '"x"')


async def test_hidden_case_details_are_redacted(sandbox):
    visible = await sandbox.execute_case(REVERSE, CodeTestCase(input='"abc"', output="'cba'"))
    assert visible.passed and visible.output == "'cba'" and visible.expected == "'cba'"

    hidden = await sandbox.execute_case(REVERSE, CodeTestCase(input='"abc"', output="'abc'", hidden=True))
    assert not hidden.passed
    assert hidden.hidden and hidden.output is None and hidden.expected is None


def test_outputs_match():
    assert outputs_match("[1, 2]", "[1,2]")
    assert outputs_match("'olleh'", "'olleh'")
    assert outputs_match("True", "true")
    assert outputs_match("15", " 15 ")
    assert not outputs_match("True", "1")
    assert not outputs_match("'15'", "15")
    assert not outputs_match(None, "1")
    assert outputs_match("<object at 0x1>", "<object at 0x1>")


def test_parse_arguments():
    assert parse_arguments('"hello"') == ("hello",)
    assert parse_arguments("[1, 2], 3") == ([1, 2], 3)
    assert parse_arguments("") == ()
