"""Local shell executor."""

from __future__ import annotations

import asyncio
from pathlib import Path

from loguru import logger

from parley.backend import ShellResult

DEFAULT_TIMEOUT_SECONDS = 30


class LocalShellExecutor:
    """Run commands through `sh -c` on this machine."""

    def __init__(self, *, default_cwd: Path | None = None, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._default_cwd = default_cwd
        self._timeout_seconds = timeout_seconds

    async def run(self, command: str, working_dir: str | None = None) -> ShellResult:
        cwd = working_dir or (str(self._default_cwd) if self._default_cwd is not None else None)
        logger.debug("shell.run cwd={} command={!r}", cwd, command)
        try:
            process = await asyncio.create_subprocess_exec(
                "sh",
                "-c",
                command,
                cwd=cwd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("shell.spawn_failed cwd={} error={}", cwd, exc)
            return ShellResult(exit_code=-1, stderr=f"cannot start command in {cwd or '.'}: {exc.strerror or exc}")
        try:
            async with asyncio.timeout(self._timeout_seconds):
                stdout_bytes, stderr_bytes = await process.communicate()
        except TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("shell.timeout seconds={} command={!r}", self._timeout_seconds, command)
            return ShellResult(exit_code=-1, stderr=f"timed out after {self._timeout_seconds}s")

        stdout_text = (stdout_bytes or b"").decode("utf-8", errors="replace").strip()
        stderr_text = (stderr_bytes or b"").decode("utf-8", errors="replace").strip()
        exit_code = process.returncode if process.returncode is not None else -1
        logger.debug("shell.done exit={} stdout_len={} stderr_len={}", exit_code, len(stdout_text), len(stderr_text))
        return ShellResult(exit_code=exit_code, stdout=stdout_text, stderr=stderr_text)
