"""Owned Chess Trainer web server process.

The web server is started as a child of the bridge. Its stdout is discarded
and its stderr is relayed into the diagnostic log, so nothing it prints can
reach the protocol stream.
"""

from __future__ import annotations

import asyncio
import os

from loguru import logger


class WebServerError(Exception):
    """Raised when the web server process cannot be started."""

    pass


class WebServerProcess:
    """A web server child process owned by the bridge."""

    def __init__(self, command: list[str], stop_timeout: float = 2.0) -> None:
        """Initialize the process handle.

        Args:
            command: argv that starts the web server.
            stop_timeout: Seconds to wait after SIGTERM before SIGKILL.
        """
        self._command = list(command)
        self._stop_timeout = stop_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._relay: asyncio.Task[None] | None = None
        self._port: int | None = None

    @property
    def configured(self) -> bool:
        """Whether a start command is available."""
        return bool(self._command)

    @property
    def running(self) -> bool:
        """Whether the child is alive."""
        return self._process is not None and self._process.returncode is None

    @property
    def port(self) -> int | None:
        """Port the child was started on."""
        return self._port if self.running else None

    async def start(self, port: int) -> None:
        """Start the web server.

        Args:
            port: Port passed to the child through the PORT variable.

        Raises:
            WebServerError: If no command is configured or the spawn fails.
        """
        if self.running:
            return
        if not self._command:
            raise WebServerError("No web server command configured (web_server.command)")

        env = {**os.environ, "PORT": str(port)}
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                start_new_session=True,
            )
        except OSError as e:
            raise WebServerError(f"Failed to start web server: {e}") from e

        self._port = port
        self._relay = asyncio.create_task(self._relay_stderr())
        logger.info(f"Started web server (pid {self._process.pid}) on port {port}")

    async def _relay_stderr(self) -> None:
        assert self._process is not None and self._process.stderr is not None
        stream = self._process.stderr
        while True:
            raw = await stream.readline()
            if not raw:
                return
            logger.info(f"web: {raw.decode('utf-8', errors='replace').rstrip()}")

    @property
    def exited(self) -> bool:
        """Whether the child was started and has already exited."""
        return self._process is not None and self._process.returncode is not None

    async def stop(self) -> None:
        """Terminate the child, escalating to SIGKILL after ``stop_timeout``."""
        process = self._process
        if process is None:
            return

        if process.returncode is None:
            process.terminate()
            try:
                await asyncio.wait_for(process.wait(), self._stop_timeout)
            except TimeoutError:
                logger.warning(f"Web server (pid {process.pid}) ignored SIGTERM, killing")
                process.kill()
                await process.wait()

        if self._relay is not None:
            self._relay.cancel()
            await asyncio.gather(self._relay, return_exceptions=True)
            self._relay = None

        logger.info(f"Web server stopped (exit code {process.returncode})")
        self._process = None
        self._port = None

    def kill(self) -> None:
        """Kill the child immediately. Used by the forced-exit path."""
        if self._process is not None and self._process.returncode is None:
            self._process.kill()
