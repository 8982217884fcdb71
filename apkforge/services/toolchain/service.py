"""
Toolchain Service.

Runs external command-line tools (apktool, keytool, zipalign, apksigner) and
wraps apktool's decode/build operations.
"""

from __future__ import annotations

import asyncio
import shutil
import signal
from dataclasses import dataclass
from pathlib import Path

from ...core.config import ToolsConfig
from ...core.exceptions import (
    ResourceExhaustionError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from ...core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CommandOutcome:
    """Captured result of a finished command."""

    returncode: int
    stdout: str
    stderr: str


def resolve_tool(tool_name: str, configured: Path | None = None) -> str:
    """Find a tool in the configured location or PATH.

    Falls back to the bare name so the failure surfaces when the command is
    actually run, with the tool name in the error.
    """
    if configured is not None and configured.exists():
        return str(configured)
    found = shutil.which(tool_name)
    return found or tool_name


def _signal_name(returncode: int) -> str:
    try:
        return signal.Signals(-returncode).name
    except ValueError:
        return str(-returncode)


class CommandRunner:
    """Runs subprocesses asynchronously with real-time output logging."""

    async def run(
        self,
        cmd: list[str],
        *,
        timeout: float | None = None,
        cwd: Path | None = None,
        log_output: bool = True,
    ) -> CommandOutcome:
        """Run a command and raise on any abnormal outcome.

        Args:
            cmd: Program and arguments.
            timeout: Seconds before the process is killed; None waits forever.
            cwd: Working directory.
            log_output: Stream each output line to the debug log.

        Returns:
            CommandOutcome for a zero exit status.

        Raises:
            ToolNotFoundError: If the program does not exist.
            ToolTimeoutError: If the timeout expired.
            ResourceExhaustionError: If the process was killed by a signal.
            ToolExecutionError: If the process exited non-zero.
        """
        tool = Path(cmd[0]).name
        logger.info("Running command", tool=tool, args=len(cmd) - 1, cwd=str(cwd) if cwd else None)

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except FileNotFoundError as e:
            raise ToolNotFoundError(
                message=f"Tool not found: {tool}",
                tool_name=tool,
                expected_path=cmd[0],
                install_hint=f"Install {tool} and add it to PATH",
                cause=e,
            )

        stdout_lines: list[str] = []
        stderr_lines: list[str] = []

        async def read_stream(stream: asyncio.StreamReader, lines: list[str], stream_name: str) -> None:
            while True:
                line = await stream.readline()
                if not line:
                    break
                decoded = line.decode("utf-8", errors="replace").rstrip()
                lines.append(decoded)
                if log_output:
                    logger.debug(f"[{tool}:{stream_name}] {decoded}")

        async def communicate() -> None:
            await asyncio.gather(
                read_stream(process.stdout, stdout_lines, "stdout"),  # type: ignore[arg-type]
                read_stream(process.stderr, stderr_lines, "stderr"),  # type: ignore[arg-type]
            )
            await process.wait()

        try:
            await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("Command timed out", tool=tool, timeout_seconds=timeout)
            raise ToolTimeoutError(
                message=f"{tool} timed out",
                operation="run",
                tool_name=tool,
                timeout_seconds=timeout or 0.0,
            )

        outcome = CommandOutcome(
            returncode=process.returncode if process.returncode is not None else -1,
            stdout="\n".join(stdout_lines),
            stderr="\n".join(stderr_lines),
        )
        logger.info("Command completed", tool=tool, returncode=outcome.returncode)

        if outcome.returncode < 0:
            raise ResourceExhaustionError(
                message=f"{tool} was killed",
                operation="run",
                tool_name=tool,
                returncode=outcome.returncode,
                stderr_tail=outcome.stderr[-500:],
                signal_name=_signal_name(outcome.returncode),
            )
        if outcome.returncode != 0:
            raise ToolExecutionError(
                message=f"Command {tool} failed with code {outcome.returncode}",
                operation="run",
                tool_name=tool,
                returncode=outcome.returncode,
                stderr_tail=(outcome.stderr or outcome.stdout)[-500:],
            )
        return outcome


class ApktoolToolchain:
    """Decode/compile collaborator backed by apktool."""

    def __init__(self, runner: CommandRunner, tools: ToolsConfig) -> None:
        self.runner = runner
        self.apktool = resolve_tool("apktool", tools.apktool_path)

    async def decode(self, apk_path: Path, output_dir: Path) -> None:
        """Decode an APK into an editable tree (resources + smali)."""
        logger.info("Decoding APK", apk=str(apk_path), output=str(output_dir))
        await self.runner.run([self.apktool, "d", str(apk_path), "-o", str(output_dir), "-f"])

    async def build(self, tree: Path, output_apk: Path) -> None:
        """Compile a decoded tree into an unsigned APK."""
        logger.info("Building APK", tree=str(tree), output=str(output_apk))
        output_apk.parent.mkdir(parents=True, exist_ok=True)
        await self.runner.run([self.apktool, "b", str(tree), "-o", str(output_apk)])
