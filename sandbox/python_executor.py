"""
Python execution sandbox for generated fixes.

Design constraints:
  - Runs in a subprocess to isolate crashes and infinite loops
  - Enforces a wall-clock timeout (10s for tests, 30s for installs)
  - Captures stdout and stderr
  - Never imports generated code into the main process

The candidate code and a guarded runner for each test statement are written
to a script inside a scratch directory, executed via subprocess, and the
directory is removed on every exit path. A run passes only when the process
exits 0 and its last stdout line is the pass marker carrying the run's
random token.

Security note: This sandbox is NOT a full security sandbox. It prevents
accidental hangs and captures output, but does not prevent file I/O or
network calls from the executed code. For production hardening, wrap with
nsjail, Docker, or similar.
"""

import asyncio
import logging
import re
import secrets
import sys
import tempfile
import textwrap
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

logger = logging.getLogger(__name__)

TEST_TIMEOUT = 10.0  # seconds
INSTALL_TIMEOUT = 30.0  # seconds

PASS_MARKER = "SANDBOX_RESULT:PASS"
FAIL_MARKER = "SANDBOX_RESULT:FAIL:"

_INSTALL_COMMAND = (
    sys.executable, "-m", "pip", "install", "--disable-pip-version-check", "--no-input",
)
# PEP 508 distribution name, optionally with a version specifier
_PACKAGE_NAME = re.compile(
    r"^[A-Za-z0-9]([A-Za-z0-9._-]*[A-Za-z0-9])?(\[[A-Za-z0-9_,.-]+\])?"
    r"((==|>=|<=|~=|!=|>|<)[A-Za-z0-9.*+!_-]+)?$"
)


@dataclass
class ExecutionResult:
    """Structured result from a sandbox execution."""
    success: bool
    # stdout alone on success, stdout + stderr otherwise
    output: str
    stdout: str = ""
    stderr: str = ""
    # Per-test failure lines extracted from the FAIL markers
    failed_tests: list[str] = field(default_factory=list)
    exception_type: str = ""
    exception_message: str = ""
    elapsed_seconds: float = 0.0
    timed_out: bool = False


_SANDBOX_WRAPPER = textwrap.dedent("""\
import sys
import traceback

{code}

# --- Tests ---
_SANDBOX_TESTS = {tests!r}
for _sandbox_index, _sandbox_test in enumerate(_SANDBOX_TESTS):
    try:
        exec(compile(_sandbox_test, "<test %d>" % _sandbox_index, "exec"), globals())
    except BaseException as _sandbox_exc:
        print(
            "{fail_marker}%d:%s:%s" % (_sandbox_index, type(_sandbox_exc).__name__, _sandbox_exc),
            file=sys.stderr,
        )
        traceback.print_exc(file=sys.stderr)
        sys.exit(1)
print("{pass_marker}")
""")


def pass_line(token: str) -> str:
    return f"{PASS_MARKER}:{token}"


def build_test_script(code: str, tests: Sequence[str], token: str = "") -> str:
    """Assemble the program the sandbox runs for one test attempt."""
    return _SANDBOX_WRAPPER.format(
        code=code.strip(),
        tests=[t.strip() for t in tests],
        fail_marker=FAIL_MARKER,
        pass_marker=pass_line(token) if token else PASS_MARKER,
    )


async def _communicate(
    argv: Sequence[str],
    timeout: float,
    cwd: str | None = None,
) -> tuple[str, str, int | None, bool]:
    """Run argv, return (stdout, stderr, returncode, timed_out)."""
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=cwd,
    )
    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        proc.kill()
        await proc.communicate()
        return "", "", None, True

    return (
        stdout_bytes.decode("utf-8", errors="replace"),
        stderr_bytes.decode("utf-8", errors="replace"),
        proc.returncode,
        False,
    )


async def run_test(
    code: str,
    tests: Sequence[str],
    timeout: float = TEST_TIMEOUT,
) -> ExecutionResult:
    """
    Execute code followed by each test statement in an isolated subprocess.

    Returns ExecutionResult for every execution outcome, including spawn
    failures and timeouts. The scratch directory is always removed.
    """
    token = secrets.token_hex(8)
    script = build_test_script(code, tests, token)
    start = time.monotonic()

    with tempfile.TemporaryDirectory(prefix="sandbox_") as scratch:
        script_path = Path(scratch) / "solution.py"
        script_path.write_text(script, encoding="utf-8")
        try:
            stdout, stderr, returncode, timed_out = await _communicate(
                (sys.executable, str(script_path)), timeout, cwd=scratch
            )
        except OSError as exc:
            logger.error("Sandbox failed to start: %s", exc)
            return ExecutionResult(
                success=False,
                output=f"Sandbox failed to start: {exc}",
                stderr=str(exc),
                exception_type=type(exc).__name__,
                exception_message=str(exc),
                elapsed_seconds=time.monotonic() - start,
            )

    elapsed = time.monotonic() - start

    if timed_out:
        logger.warning("Sandbox execution timed out after %.1fs", timeout)
        message = f"EXECUTION TIMEOUT after {timeout}s"
        return ExecutionResult(
            success=False,
            output=message,
            stderr=message,
            exception_type="TimeoutError",
            exception_message=f"Execution exceeded {timeout} second limit",
            elapsed_seconds=timeout,
            timed_out=True,
        )

    result = _parse_result(stdout, stderr, elapsed, returncode, pass_line(token))
    logger.info(
        "Sandbox run complete: success=%s exit=%s elapsed=%.2fs",
        result.success,
        returncode,
        elapsed,
    )
    return result


def _parse_result(
    stdout: str,
    stderr: str,
    elapsed: float,
    returncode: int | None,
    expected_pass: str,
) -> ExecutionResult:
    """
    Interpret sandbox output markers.

    Markers written by the wrapper script:
      SANDBOX_RESULT:PASS:<token>                    (stdout, last line)
      SANDBOX_RESULT:FAIL:<index>:<type>:<message>   (stderr)
    """
    lines = stdout.rstrip().splitlines()
    if returncode == 0 and lines and lines[-1] == expected_pass:
        return ExecutionResult(
            success=True,
            output=stdout,
            stdout=stdout,
            stderr=stderr,
            elapsed_seconds=elapsed,
        )

    failed_tests: list[str] = []
    exception_type = ""
    exception_message = ""

    for line in stderr.splitlines():
        if line.startswith(FAIL_MARKER):
            detail = line.removeprefix(FAIL_MARKER)
            failed_tests.append(detail)
            parts = detail.split(":", 2)
            if len(parts) == 3:
                exception_type, exception_message = parts[1], parts[2]

    # Code that crashes before the tests run leaves no marker, only a traceback
    if not exception_type:
        for line in reversed(stderr.splitlines()):
            match = re.match(r"^([A-Za-z_][\w.]*(?:Error|Exception|Exit|Interrupt)):\s?(.*)$", line)
            if match:
                exception_type, exception_message = match.group(1), match.group(2)
                break

    return ExecutionResult(
        success=False,
        output=stdout + stderr,
        stdout=stdout,
        stderr=stderr,
        failed_tests=failed_tests,
        exception_type=exception_type,
        exception_message=exception_message,
        elapsed_seconds=elapsed,
    )


def is_valid_package_name(name: str) -> bool:
    return bool(_PACKAGE_NAME.match(name))


async def install_dependency(
    name: str,
    timeout: float = INSTALL_TIMEOUT,
) -> ExecutionResult:
    """
    Install a single package with pip in a separate process.

    Any stderr output counts as failure even when pip exits 0. Benign
    warnings are therefore reported as failures.
    """
    if not is_valid_package_name(name):
        message = f"Refusing to install invalid package name: {name!r}"
        logger.warning(message)
        return ExecutionResult(success=False, output=message, stderr=message)

    start = time.monotonic()
    try:
        stdout, stderr, returncode, timed_out = await _communicate(
            (*_INSTALL_COMMAND, name), timeout
        )
    except OSError as exc:
        logger.error("Installer failed to start: %s", exc)
        return ExecutionResult(
            success=False,
            output=f"Installer failed to start: {exc}",
            stderr=str(exc),
            exception_type=type(exc).__name__,
            exception_message=str(exc),
            elapsed_seconds=time.monotonic() - start,
        )
    elapsed = time.monotonic() - start

    if timed_out:
        message = f"INSTALL TIMEOUT after {timeout}s"
        return ExecutionResult(
            success=False,
            output=message,
            stderr=message,
            exception_type="TimeoutError",
            elapsed_seconds=timeout,
            timed_out=True,
        )

    success = returncode == 0 and not stderr.strip()
    logger.info(
        "Install of %s complete: success=%s exit=%s elapsed=%.2fs",
        name,
        success,
        returncode,
        elapsed,
    )
    return ExecutionResult(
        success=success,
        output=stdout if success else stdout + stderr,
        stdout=stdout,
        stderr=stderr,
        elapsed_seconds=elapsed,
    )


def format_failure_summary(result: ExecutionResult, max_lines: int = 40) -> str:
    """
    Produce a concise failure summary for the reasoning service.

    Exception info first, then the tail of the traceback.
    """
    if result.success:
        return "All tests passed."

    lines: list[str] = []

    if result.exception_type:
        lines.append(f"Exception: {result.exception_type}: {result.exception_message}")

    if result.failed_tests:
        lines.append("Failed tests:")
        for detail in result.failed_tests:
            lines.append(f"  - test {detail}")

    output_lines = [
        l for l in result.output.splitlines() if not l.startswith("SANDBOX_RESULT:")
    ]
    if output_lines:
        lines.append(f"Output (last {max_lines} lines):")
        lines.extend(output_lines[-max_lines:])

    return "\n".join(lines)


class SandboxExecutor:
    """
    Injectable facade over run_test / install_dependency.

    The repair graph depends on this interface so tests can substitute a
    scripted executor without spawning processes.
    """

    def __init__(
        self,
        test_timeout: float = TEST_TIMEOUT,
        install_timeout: float = INSTALL_TIMEOUT,
    ) -> None:
        self.test_timeout = test_timeout
        self.install_timeout = install_timeout

    async def run_test(self, code: str, tests: Sequence[str]) -> ExecutionResult:
        return await run_test(code, tests, timeout=self.test_timeout)

    async def install_dependency(self, name: str) -> ExecutionResult:
        return await install_dependency(name, timeout=self.install_timeout)
