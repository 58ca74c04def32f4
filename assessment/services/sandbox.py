"""
Sandboxed execution of submitted Python code.

Every run gets its own interpreter process (see ``sandbox_harness``) in a
new session, an empty temporary working directory, an empty environment and
hard resource limits. Where the host allows it the process also starts in
fresh user and network namespaces, so it holds no host capability and has
no network. The in-process audit hook narrows what is left. The process
group is killed once the wall-clock budget is spent and the process is
always reaped, so nothing survives from one test case to the next.
"""
import ast
import asyncio
import contextlib
import json
import logging
import math
import os
import resource
import signal
import subprocess
import sys
import tempfile
import time
from functools import partial
from typing import Any, Optional, Set, Tuple

from assessment.core.config import Settings
from assessment.core.errors import SandboxUnavailable
from assessment.core.metrics import SANDBOX_DURATION, SANDBOX_EXECUTIONS
from assessment.models.schemas import CaseResult, CodeTestCase, ExecutionResult, ExecutionStatus

logger = logging.getLogger(__name__)

HARNESS_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "sandbox_harness.py")
READY = b"READY"
MIN_TIME_LIMIT = 0.05
MAX_OPEN_FILES = 64


CLONE_NEWUSER = getattr(os, "CLONE_NEWUSER", 0x10000000)
CLONE_NEWNET = getattr(os, "CLONE_NEWNET", 0x40000000)


def _isolate(required: bool) -> bool:
    """Move the child into fresh user and network namespaces.

    The new user namespace leaves the child without any host capability and
    the new network namespace has no interfaces beyond a down loopback.
    """
    unshare = getattr(os, "unshare", None)
    if unshare is not None:
        for flags in (CLONE_NEWUSER | CLONE_NEWNET, CLONE_NEWNET):
            try:
                unshare(flags)
                return True
            except OSError:
                pass
    if required:
        raise OSError("sandbox namespaces are not available")
    return False


def _prepare_child(memory_bytes: int, cpu_seconds: int, isolate: bool, required: bool) -> None:
    """Runs in the child between fork and exec."""
    if isolate:
        _isolate(required)
    resource.setrlimit(resource.RLIMIT_AS, (memory_bytes, memory_bytes))
    resource.setrlimit(resource.RLIMIT_CPU, (cpu_seconds, cpu_seconds))
    resource.setrlimit(resource.RLIMIT_NOFILE, (MAX_OPEN_FILES, MAX_OPEN_FILES))
    resource.setrlimit(resource.RLIMIT_FSIZE, (0, 0))
    resource.setrlimit(resource.RLIMIT_NPROC, (0, 0))


def _literal(text: Optional[str]) -> Tuple[bool, Any]:
    if text is None:
        return False, None
    try:
        return True, ast.literal_eval(text.strip())
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return False, None


def _expected_literal(text: str) -> Tuple[bool, Any]:
    ok, value = _literal(text)
    if ok:
        return ok, value
    # JSON-style expectations such as true/false/null
    try:
        return True, json.loads(text)
    except ValueError:
        return False, None


def outputs_match(actual: Optional[str], expected: str) -> bool:
    """Compare a returned value's repr with an expected literal.

    Both sides are compared as Python values when they parse as literals
    (so ``[1,2]`` matches ``[1, 2]``), otherwise as stripped strings.
    Booleans never match numbers.
    """
    if actual is None:
        return False
    ok_a, a = _literal(actual)
    ok_e, e = _expected_literal(expected)
    if ok_a and ok_e:
        if isinstance(a, bool) != isinstance(e, bool):
            return False
        return a == e
    return actual.strip() == expected.strip()


class SandboxExecutor:
    """Runs untrusted code one test case at a time, bounded in time, memory and concurrency."""

    def __init__(self, settings: Settings, python: Optional[str] = None, harness_path: str = HARNESS_PATH):
        self.python = python or sys.executable
        self.harness_path = harness_path
        self.default_time_limit = settings.SANDBOX_TIME_LIMIT
        self.max_time_limit = settings.SANDBOX_MAX_TIME_LIMIT
        self.grace = settings.SANDBOX_STARTUP_GRACE
        self.memory_bytes = settings.SANDBOX_MEMORY_LIMIT_MB * 1024 * 1024
        self.max_output = settings.SANDBOX_MAX_OUTPUT_CHARS
        self.entry_point = settings.SANDBOX_ENTRY_POINT
        self.isolate = settings.SANDBOX_ISOLATE_NAMESPACES
        self.require_isolation = settings.SANDBOX_REQUIRE_ISOLATION
        self.run_as = settings.SANDBOX_UID
        if self.isolate and not hasattr(os, "unshare"):
            logger.warning("os.unshare is unavailable; sandbox runs share the host network namespace")
        self._slots = asyncio.Semaphore(settings.SANDBOX_MAX_WORKERS)
        self._inflight: Set[asyncio.Task] = set()

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    def _clamp(self, time_limit: Optional[float]) -> float:
        limit = time_limit if time_limit is not None else self.default_time_limit
        return min(max(limit, MIN_TIME_LIMIT), self.max_time_limit)

    async def run(self, code: str, input: str = "", time_limit: Optional[float] = None) -> ExecutionResult:
        """Execute ``code``'s entry point once with ``input`` as its arguments.

        Cancelling the caller does not cancel the execution: it still runs to
        completion or timeout and its result is discarded.
        Raises ``SandboxUnavailable`` if no worker could be started.
        """
        task = asyncio.ensure_future(self._execute(code, input, self._clamp(time_limit)))
        self._inflight.add(task)
        task.add_done_callback(self._forget)
        return await asyncio.shield(task)

    def _forget(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if not task.cancelled():
            task.exception()  # marks it retrieved when the caller has gone away

    async def execute_case(self, code: str, case: CodeTestCase, time_limit: Optional[float] = None) -> CaseResult:
        result = await self.run(code, case.input, time_limit)
        passed = result.succeeded and outputs_match(result.output, case.output)
        return CaseResult(
            passed=passed,
            status=result.status,
            hidden=case.hidden,
            output=None if case.hidden else result.output,
            expected=None if case.hidden else case.output,
            stdout="" if case.hidden else result.stdout,
            error=result.error,
            duration_ms=result.duration_ms,
        )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight executions, e.g. at shutdown."""
        if self._inflight:
            logger.info(f"Waiting for {len(self._inflight)} sandbox execution(s) to finish")
            await asyncio.wait(set(self._inflight), timeout=timeout)

    async def _execute(self, code: str, input: str, time_limit: float) -> ExecutionResult:
        async with self._slots:
            started = time.monotonic()
            try:
                result = await self._spawn(code, input, time_limit)
            except SandboxUnavailable:
                SANDBOX_EXECUTIONS.labels(status="infrastructure").inc()
                raise
            elapsed = time.monotonic() - started
            SANDBOX_DURATION.observe(elapsed)
            SANDBOX_EXECUTIONS.labels(status=result.status.value).inc()
            result.duration_ms = int(elapsed * 1000)
            return result

    async def _spawn(self, code: str, input: str, time_limit: float) -> ExecutionResult:
        request = json.dumps({
            "code": code,
            "input": input,
            "entry_point": self.entry_point,
            "max_output": self.max_output,
        }).encode("utf-8")
        # room for output + stdout, each at worst 6 bytes per char once JSON-escaped
        cap = 12 * self.max_output + 8192

        extra = {"user": self.run_as} if self.run_as is not None else {}
        prepare = partial(
            _prepare_child, self.memory_bytes, math.ceil(time_limit) + 1, self.isolate, self.require_isolation
        )

        with tempfile.TemporaryDirectory(prefix="sandbox-") as workdir:
            if self.run_as is not None:
                os.chmod(workdir, 0o711)
            try:
                proc = await asyncio.create_subprocess_exec(
                    self.python, "-I", "-S", "-B", self.harness_path,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                    cwd=workdir,
                    env={},
                    start_new_session=True,
                    preexec_fn=prepare,
                    **extra,
                )
            except (OSError, subprocess.SubprocessError) as e:
                logger.error(f"Sandbox worker failed to start: {e}")
                raise SandboxUnavailable("sandbox worker could not be started") from e

            timed_out = overflow = False
            data = b""
            try:
                data, overflow = await asyncio.wait_for(
                    self._exchange(proc, request, cap), timeout=time_limit + self.grace
                )
            except asyncio.TimeoutError:
                timed_out = True
            finally:
                await self._reap(proc)

        if timed_out:
            return ExecutionResult(status=ExecutionStatus.TIMEOUT, error=f"time limit of {time_limit:g}s exceeded")
        if overflow:
            return ExecutionResult(status=ExecutionStatus.RESOURCE_LIMIT, error="output limit exceeded")
        return self._interpret(data, proc.returncode)

    @staticmethod
    async def _exchange(proc: asyncio.subprocess.Process, request: bytes, cap: int) -> Tuple[bytes, bool]:
        try:
            proc.stdin.write(request)
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            pass
        finally:
            proc.stdin.close()

        chunks, size = [], 0
        while True:
            chunk = await proc.stdout.read(65536)
            if not chunk:
                break
            size += len(chunk)
            if size > cap:
                return b"".join(chunks), True
            chunks.append(chunk)
        await proc.wait()
        return b"".join(chunks), False

    @staticmethod
    async def _reap(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError, PermissionError):
                os.killpg(proc.pid, signal.SIGKILL)
        await proc.wait()

    def _interpret(self, data: bytes, returncode: Optional[int]) -> ExecutionResult:
        lines = data.split(b"\n")
        if lines[0].strip() != READY:
            logger.error(f"Sandbox worker exited without handshake (returncode={returncode})")
            raise SandboxUnavailable("sandbox worker did not start correctly")

        payload = None
        for line in reversed(lines[1:]):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except ValueError:
                continue
            if isinstance(payload, dict):
                break
            payload = None

        if payload is None:
            if returncode is not None and returncode < 0:
                return ExecutionResult(
                    status=ExecutionStatus.RESOURCE_LIMIT,
                    error=f"terminated by signal {-returncode}",
                )
            return ExecutionResult(status=ExecutionStatus.ERROR, error="no result produced")

        stdout = str(payload.get("stdout") or "")
        if payload.get("truncated"):
            return ExecutionResult(status=ExecutionStatus.RESOURCE_LIMIT, error="output limit exceeded", stdout=stdout)
        if payload.get("status") == "ok":
            return ExecutionResult(status=ExecutionStatus.OK, output=str(payload.get("output")), stdout=stdout)
        return ExecutionResult(
            status=ExecutionStatus.ERROR,
            error=str(payload.get("error") or "execution failed"),
            stdout=stdout,
        )
