"""
Exec Tool - shell command execution with a hard timeout.

Commands that do not carry their own timeout directive are wrapped with
``timeout <n>s`` so the operating system kills them after the configured
limit, independent of any cancellation by the caller.
"""

import asyncio
import re
import shlex
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..config import Settings, get_settings
from .base import Tool, ToolContext, ToolParameter
from .errors import ErrorCode, tool_error, tool_success

logger = structlog.get_logger()

TIMEOUT_EXIT_CODE = 124
# 128 + SIGKILL / SIGTERM as reported by a shell
SIGNAL_EXIT_CODES = {137, 143}

TIMEOUT_DIRECTIVE = re.compile(
    r"^\s*timeout\b"             # timeout 30 cmd
    r"|--timeout(?:=|\s+)\d"     # --timeout=30 / --timeout 30
    r"|(?:^|\s)-t\s+\d"          # -t 30
)


def has_timeout_directive(command: str) -> bool:
    """Whether a command already bounds its own runtime."""
    return bool(TIMEOUT_DIRECTIVE.search(command))


def wrap_with_timeout(command: str, seconds: int) -> str:
    return f"timeout {seconds}s sh -c {shlex.quote(command)}"


@dataclass
class ShellConfig:
    """Configuration for shell command execution."""

    timeout_seconds: int = 15
    max_output_chars: int = 10000
    max_output_lines: int = 200
    working_dir: str | None = None

    blocked_patterns: list[str] = field(default_factory=lambda: [
        r"rm\s+-rf\s+/(?:\s|$)",
        r"mkfs",
        r"dd\s+if=.*\s+of=/dev/",
        r":\(\)\s*\{\s*:\|:&\s*\};:",
    ])

    @classmethod
    def from_settings(cls, settings: Settings) -> "ShellConfig":
        return cls(
            timeout_seconds=settings.exec_timeout_seconds,
            max_output_chars=settings.exec_max_output_chars,
        )


@dataclass
class ShellResult:
    """Outcome of one command."""

    command: str
    exit_code: int
    stdout: str
    stderr: str
    wrapped: bool
    timed_out: bool = False


class ShellExecutor:
    """Executes shell commands under an external timeout."""

    def __init__(self, config: ShellConfig | None = None):
        self.config = config or ShellConfig()

    def blocked_reason(self, command: str) -> str | None:
        for pattern in self.config.blocked_patterns:
            if re.search(pattern, command, re.IGNORECASE):
                return f"Command matches blocked pattern '{pattern}'"
        return None

    async def run(self, command: str, working_dir: str | None = None) -> ShellResult:
        wrapped = not has_timeout_directive(command)
        to_run = wrap_with_timeout(command, self.config.timeout_seconds) if wrapped else command

        process = await asyncio.create_subprocess_shell(
            to_run,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=working_dir or self.config.working_dir,
        )

        try:
            if wrapped:
                # Backstop in case the timeout binary itself hangs
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(),
                    timeout=self.config.timeout_seconds + 5,
                )
            else:
                stdout, stderr = await process.communicate()
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ShellResult(command, -9, "", "", wrapped, timed_out=True)

        exit_code = process.returncode if process.returncode is not None else -1
        return ShellResult(
            command=command,
            exit_code=exit_code,
            stdout=self._truncate_output(stdout.decode("utf-8", errors="replace")),
            stderr=self._truncate_output(stderr.decode("utf-8", errors="replace")),
            wrapped=wrapped,
            timed_out=exit_code == TIMEOUT_EXIT_CODE or exit_code < 0 or exit_code in SIGNAL_EXIT_CODES,
        )

    def _truncate_output(self, output: str) -> str:
        """Truncate output to configured limits."""
        lines = output.split("\n")

        if len(lines) > self.config.max_output_lines:
            lines = lines[:self.config.max_output_lines]
            output = "\n".join(lines) + f"\n\n... (truncated, {len(lines)} lines shown)"

        if len(output) > self.config.max_output_chars:
            output = output[:self.config.max_output_chars] + "\n\n... (truncated)"

        return output


def create_exec_tool(settings: Settings | None = None, config: ShellConfig | None = None) -> Tool:
    """Create the exec tool."""
    executor = ShellExecutor(config or ShellConfig.from_settings(settings or get_settings()))
    limit = executor.config.timeout_seconds

    async def exec_handler(args: dict[str, Any], context: ToolContext) -> str:
        command = str(args.get("command") or "").strip()
        working_dir = str(args.get("working_dir") or "").strip() or None

        reason = executor.blocked_reason(command)
        if reason:
            return tool_error(
                ErrorCode.PERMISSION_DENIED,
                "command_blocked",
                reason,
                recoverable=False,
                context={"command": command},
            )

        try:
            result = await executor.run(command, working_dir)
        except OSError as e:
            logger.error("Failed to start command", command=command, error=str(e))
            return tool_error(
                ErrorCode.SERVICE_UNAVAILABLE,
                "shell_execution_failed",
                f"Could not start command: {e}",
                suggestions=["Check that the working directory exists"],
                context={"command": command, "working_dir": working_dir},
            )

        if result.timed_out:
            logger.warning("Command timed out", command=command, exit_code=result.exit_code)
            return tool_error(
                ErrorCode.CONNECTION_TIMEOUT,
                "shell_execution_failed",
                f"Command was terminated after exceeding the {limit}s time limit",
                recoverable=True,
                suggestions=[
                    f"Commands are killed after {limit} seconds; run a smaller or faster command",
                    "If the command legitimately needs longer, prefix it with an explicit timeout, e.g. 'timeout 60 <command>'",
                ],
                context={"command": command, "exit_code": result.exit_code, "stdout": result.stdout[-500:]},
            )

        if result.exit_code != 0:
            return tool_error(
                ErrorCode.INTERNAL_ERROR,
                "shell_execution_failed",
                f"Command exited with code {result.exit_code}",
                recoverable=True,
                suggestions=["Inspect stderr and adjust the command"],
                context={
                    "command": command,
                    "exit_code": result.exit_code,
                    "stdout": result.stdout,
                    "stderr": result.stderr,
                },
            )

        return tool_success({
            "command": command,
            "exit_code": 0,
            "stdout": result.stdout,
            "stderr": result.stderr,
        })

    return Tool(
        name="exec",
        description=(
            f"Run a shell command and return its output. Commands are killed after "
            f"{limit} seconds unless they specify their own timeout."
        ),
        parameters=[
            ToolParameter(
                name="command",
                param_type="string",
                description="The shell command to execute",
            ),
            ToolParameter(
                name="working_dir",
                param_type="string",
                description="Working directory for the command",
                required=False,
            ),
        ],
        handler=exec_handler,
    )
