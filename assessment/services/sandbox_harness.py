"""
Worker program for one sandboxed execution.

Started by ``SandboxExecutor`` as ``python -I -S -B sandbox_harness.py`` in a
fresh process, so it relies on the standard library only. It reads one JSON
request from stdin::

    {"code": "...", "input": "[1, 2], 3", "entry_point": "solution", "max_output": 4096}

and writes to the inherited stdout a ``READY`` line once its guards are in
place, followed by a single JSON result line. Everything the submission
prints is captured in memory; the real stdout and stderr are pointed at
/dev/null before any submitted code runs.
"""
import ast
import io
import json
import os
import sys

READY = b"READY\n"
MAX_ERROR_CHARS = 500

BLOCKED_MODULES = frozenset({
    "socket", "_socket", "ssl", "_ssl", "select", "selectors",
    "subprocess", "_posixsubprocess", "multiprocessing", "_multiprocessing",
    "ctypes", "_ctypes", "mmap", "pty", "fcntl", "resource", "signal",
    "gc", "__main__",
})
BLOCKED_PREFIXES = (
    "socket.", "subprocess.", "shutil.", "ctypes.", "urllib.", "http.", "ftplib.",
    "smtplib.", "poplib.", "imaplib.", "telnetlib.", "webbrowser.", "sqlite3.",
    "resource.", "fcntl.", "pty.", "syslog.", "winreg.", "msvcrt.",
)
BLOCKED_EVENTS = frozenset({
    "os.system", "os.exec", "os.posix_spawn", "os.spawn", "os.fork", "os.forkpty",
    "os.kill", "os.killpg", "os.remove", "os.rename", "os.rmdir", "os.mkdir",
    "os.chmod", "os.chown", "os.chdir", "os.chflags", "os.link", "os.symlink",
    "os.truncate", "os.utime", "os.putenv", "os.unsetenv", "os.setxattr",
    "os.removexattr", "os.listxattr", "os.getxattr", "os.startfile",
    "signal.pthread_kill", "glob.glob", "glob.glob/2",
    "sys.settrace", "sys.setprofile", "gc.get_objects", "gc.get_referrers", "gc.get_referents",
})
# refused with AttributeError, the error stdlib callers expect when frames are unavailable
FRAME_EVENTS = frozenset({
    "sys._getframe", "sys._getframemodulename", "sys._current_frames", "object.__getattr__",
})
WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_APPEND | os.O_TRUNC


def _stdlib_roots():
    base = os.path.dirname(os.__file__)
    return tuple({os.path.abspath(base), os.path.realpath(base)})


def make_guard(roots, blocked_modules=BLOCKED_MODULES, blocked_events=BLOCKED_EVENTS,
               blocked_prefixes=BLOCKED_PREFIXES, frame_events=FRAME_EVENTS):
    """Audit hook: read-only access to the standard library, nothing else risky.

    The submission shares this interpreter, so everything the hook reads is
    bound here at install time and paths are resolved with ``str`` methods
    only. Rebinding module globals, ``os.path`` helpers or builtins afterwards
    does not change what the hook allows.
    """
    str_type, bytes_type, is_instance = str, bytes, isinstance
    as_str, as_text = str.__str__, bytes.decode
    denied, import_denied, hidden = PermissionError, ImportError, AttributeError
    sep, encoding, cwd = os.sep, sys.getfilesystemencoding(), os.getcwd()
    write_flags = WRITE_FLAGS
    roots = tuple(as_str(root) for root in roots)

    def absolute(path):
        if not path.startswith(sep):
            path = cwd + sep + path
        parts = []
        for part in path.split(sep):
            if part == "" or part == ".":
                continue
            if part == "..":
                if parts:
                    parts.pop()
            else:
                parts.append(part)
        return sep + sep.join(parts)

    def within(path):
        if is_instance(path, bytes_type):
            path = as_text(path, encoding, "surrogateescape")
        elif is_instance(path, str_type):
            path = as_str(path)
        else:
            return False
        full = absolute(path)
        for root in roots:
            if full == root or full.startswith(root + sep):
                return True
        return False

    def is_write(mode, flags):
        if is_instance(mode, str_type):
            mode = as_str(mode)
            for c in "wax+":
                if c in mode:
                    return True
            return False
        return flags is not None and (flags & write_flags) != 0

    def guard(event, args):
        if event == "open":
            path, mode, flags = (args + (None, None, None))[:3]
            if is_write(mode, flags) or not within(path):
                raise denied("access to this path is not permitted")
        elif event == "os.listdir" or event == "os.scandir":
            if not args or not within(args[0]):
                raise denied("directory listing is not permitted")
        elif event == "import":
            name = as_str(args[0]) if args and is_instance(args[0], str_type) else ""
            if name.split(".")[0] in blocked_modules:
                raise import_denied(f"import of {name} is not permitted")
        elif event in frame_events:
            raise hidden(f"{event} is not available")
        elif event in blocked_events or event.startswith(blocked_prefixes):
            raise denied(f"{event} is not permitted")
    return guard


def describe(exc: BaseException) -> str:
    try:
        text = f"{type(exc).__name__}: {exc}"
    except BaseException:
        text = type(exc).__name__
    return text[:MAX_ERROR_CHARS]


def parse_arguments(raw: str) -> tuple:
    """``'"hello"'`` -> ``("hello",)``; ``'[1, 2], 3'`` -> ``([1, 2], 3)``; blank -> ``()``."""
    if not raw or not raw.strip():
        return ()
    return ast.literal_eval(f"({raw},)")


def run_submission(request: dict) -> dict:
    code = request.get("code") or ""
    entry = request.get("entry_point") or "solution"
    limit = int(request.get("max_output") or 4096)
    captured = io.StringIO()
    sys.stdout = sys.stderr = captured
    try:
        args = parse_arguments(request.get("input") or "")
        namespace = {"__name__": "__submission__", "__builtins__": __builtins__}
        exec(compile(code, "<submission>", "exec"), namespace)
        func = namespace.get(entry)
        if not callable(func):
            raise NameError(f"entry point '{entry}' is not defined")
        output = repr(func(*args))
        return {
            "status": "ok",
            "output": output[:limit],
            "truncated": len(output) > limit,
            "stdout": captured.getvalue()[:limit],
        }
    except BaseException as e:
        return {"status": "error", "error": describe(e), "stdout": captured.getvalue()[:limit]}
    finally:
        sys.stdout, sys.stderr = sys.__stdout__, sys.__stderr__


def _write_all(fd: int, data: bytes) -> None:
    view = memoryview(data)
    while view:
        written = os.write(fd, view)
        view = view[written:]


def main() -> None:
    request = json.loads(sys.stdin.buffer.read() or b"{}")
    result_fd = os.dup(1)
    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (0, 1, 2):
        os.dup2(devnull, fd)
    os.close(devnull)

    sys.addaudithook(make_guard(_stdlib_roots()))
    # the submission must not reach this module through sys.modules
    sys.modules.pop("__main__", None)
    _write_all(result_fd, READY)
    result = run_submission(request)
    try:
        _write_all(result_fd, (json.dumps(result, ensure_ascii=False) + "\n").encode("utf-8", "replace"))
    finally:
        # skip interpreter teardown; submitted code may have left threads or finalizers behind
        os._exit(0)


if __name__ == "__main__":
    main()
