"""Stdio bridge lifecycle controller.

Owns the process from startup to exit: installs the output guard, reads
framed lines from stdin, runs each message on its own task, and sequences
shutdown on end of input, SIGINT/SIGTERM, or a fatal fault.

Exit codes:
    0  end of input or termination signal
    1  fatal fault or forced termination
"""

from __future__ import annotations

import asyncio
import os
import signal
import threading
from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from chess_trainer_mcp.config import BridgeConfig
from chess_trainer_mcp.protocol.framing import FramingError, RequestFramer, open_stdin
from chess_trainer_mcp.protocol.guard import OutputChannelGuard
from chess_trainer_mcp.protocol.jsonrpc import format_notification
from chess_trainer_mcp.server import MCPServer

EXIT_OK = 0
EXIT_FATAL = 1

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ManagedService(Protocol):
    """A long-lived child service owned by the bridge."""

    @property
    def running(self) -> bool: ...

    async def stop(self) -> None: ...

    def kill(self) -> None: ...


class TimerState(Enum):
    """States of the forced-exit timer."""

    IDLE = "idle"
    DRAINING = "draining"
    FORCE_KILL = "force_kill"
    CANCELLED = "cancelled"


class ForcedExitTimer:
    """Two-deadline shutdown timer.

    Stage 1 runs on the event loop after ``grace_period``: it calls
    ``on_force`` and exits. Stage 2 runs on a watchdog thread after
    ``hard_timeout`` and exits even if the event loop is stuck. ``cancel()``
    disarms both. The exit function is called at most once.
    """

    def __init__(
        self,
        grace_period: float,
        hard_timeout: float,
        on_force: Callable[[], None],
        exit_func: Callable[[int], Any] = os._exit,
        log: Any = None,
    ) -> None:
        self._grace_period = grace_period
        self._hard_timeout = hard_timeout
        self._on_force = on_force
        self._exit_func = exit_func
        self._log = log
        self._state = TimerState.IDLE
        self._handle: asyncio.TimerHandle | None = None
        self._watchdog: threading.Timer | None = None
        self._exit_lock = threading.Lock()
        self._exited = False

    @property
    def state(self) -> TimerState:
        """Current timer state."""
        return self._state

    @property
    def exited(self) -> bool:
        """Whether the exit function has been called."""
        return self._exited

    def arm(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start both deadlines. No-op unless IDLE."""
        if self._state != TimerState.IDLE:
            return
        self._state = TimerState.DRAINING
        self._handle = loop.call_later(self._grace_period, self._force)
        self._watchdog = threading.Timer(self._hard_timeout, self._hard_exit)
        self._watchdog.daemon = True
        self._watchdog.start()

    def cancel(self) -> None:
        """Disarm both deadlines."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._watchdog is not None:
            self._watchdog.cancel()
            self._watchdog = None
        if self._state == TimerState.DRAINING:
            self._state = TimerState.CANCELLED

    def _force(self) -> None:
        self._handle = None
        self._state = TimerState.FORCE_KILL
        if self._log is not None:
            self._log.error(f"Shutdown did not finish within {self._grace_period}s, forcing exit")
        try:
            self._on_force()
        finally:
            self._exit(EXIT_FATAL)

    def _hard_exit(self) -> None:
        self._state = TimerState.FORCE_KILL
        self._exit(EXIT_FATAL)

    def _exit(self, code: int) -> None:
        with self._exit_lock:
            if self._exited:
                return
            self._exited = True
        if self._watchdog is not None and threading.current_thread() is not self._watchdog:
            self._watchdog.cancel()
        self._exit_func(code)


class StdioBridge:
    """Runs an MCPServer over stdin/stdout.

    Lines are dispatched in input order, but each message runs on its own
    task, so several tool calls can be in flight and replies may be written
    out of order. Replies correlate by id only.
    """

    def __init__(
        self,
        server: MCPServer,
        guard: OutputChannelGuard,
        config: BridgeConfig | None = None,
        owned_service: ManagedService | None = None,
        exit_func: Callable[[int], Any] = os._exit,
    ) -> None:
        """Initialize the bridge.

        Args:
            server: Method dispatcher.
            guard: Output channel guard; the only writer of stdout.
            config: Bridge configuration.
            owned_service: Child service to stop during shutdown.
            exit_func: Process exit used by the forced-exit stages.
        """
        self._server = server
        self._guard = guard
        self._config = config or BridgeConfig()
        self._owned_service = owned_service
        self._log = guard.logger
        self._timer = ForcedExitTimer(
            self._config.grace_period,
            self._config.hard_timeout,
            on_force=self._kill_owned_service,
            exit_func=exit_func,
            log=self._log,
        )
        self._framer: RequestFramer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._inflight: set[asyncio.Task[None]] = set()
        self._signals: list[signal.Signals] = []
        self._shutting_down = False
        self._shutdown_reason: str | None = None
        self._exit_code = EXIT_OK

    @property
    def shutting_down(self) -> bool:
        """Whether shutdown has begun."""
        return self._shutting_down

    @property
    def shutdown_reason(self) -> str | None:
        """What triggered shutdown."""
        return self._shutdown_reason

    @property
    def exit_code(self) -> int:
        """Exit code the process should return."""
        return self._exit_code

    @property
    def timer(self) -> ForcedExitTimer:
        """The forced-exit timer."""
        return self._timer

    @property
    def inflight(self) -> int:
        """Number of messages currently being processed."""
        return len(self._inflight)

    async def run(self, framer: RequestFramer | None = None) -> int:
        """Serve until shutdown.

        Args:
            framer: Line source (defaults to process stdin).

        Returns:
            Process exit code.
        """
        self._loop = asyncio.get_running_loop()
        installed_here = not self._guard.installed
        if installed_here:
            self._guard.install(self._config.log_level)

        previous_handler = self._loop.get_exception_handler()
        self._loop.set_exception_handler(self._on_loop_exception)
        self._install_signal_handlers()
        try:
            self._framer = framer or await open_stdin()
            self._log.info("Chess Trainer MCP bridge started")

            if self._config.announce_ready:
                self._guard.send(format_notification("notifications/initialized", {}))

            await self._read_loop()
            await self._finish()
        finally:
            self._remove_signal_handlers()
            self._loop.set_exception_handler(previous_handler)
            if installed_here:
                self._guard.uninstall()

        return self._exit_code

    async def _read_loop(self) -> None:
        assert self._framer is not None
        try:
            async for line in self._framer:
                self._dispatch(line)
        except FramingError as e:
            self._fatal(f"Input framing failed: {e}")
            return
        except OSError as e:
            self._fatal(f"Input stream failed: {e}")
            return

        if not self._shutting_down:
            self._log.info("EOF received, shutting down")
            self.request_shutdown("end of input")

    def _dispatch(self, line: str) -> None:
        assert self._loop is not None
        task = self._loop.create_task(self._process(line))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _process(self, line: str) -> None:
        try:
            response = await self._server.handle_message(line)
            if response is not None:
                self._guard.send(response)
        except Exception as e:
            self._log.opt(exception=e).error("Unhandled fault while processing a message")
            self.request_shutdown("uncaught fault", EXIT_FATAL)

    def _fatal(self, message: str) -> None:
        self._log.error(message)
        self.request_shutdown("fatal error", EXIT_FATAL)

    def request_shutdown(self, reason: str, exit_code: int = EXIT_OK) -> None:
        """Begin shutdown. Repeated requests are no-ops.

        Args:
            reason: What triggered shutdown (for diagnostics).
            exit_code: Exit code for this trigger.
        """
        if self._shutting_down:
            if exit_code != EXIT_OK and self._exit_code == EXIT_OK:
                self._exit_code = exit_code
            self._log.debug(f"Shutdown already in progress, ignoring: {reason}")
            return

        self._shutting_down = True
        self._shutdown_reason = reason
        self._exit_code = exit_code
        self._server.lifecycle.begin_shutdown()
        self._log.info(f"Shutting down ({reason})")

        if self._loop is not None:
            self._timer.arm(self._loop)
        if self._framer is not None:
            self._framer.close()

    def handle_signal(self, sig: signal.Signals) -> None:
        """Signal handler: SIGINT and SIGTERM share the graceful path."""
        self.request_shutdown(f"received {sig.name}")

    async def _finish(self) -> None:
        if self._inflight:
            pending_tasks = set(self._inflight)
            _, pending = await asyncio.wait(pending_tasks, timeout=self._config.drain_timeout)
            if pending:
                self._log.warning(f"Abandoning {len(pending)} in-flight request(s)")
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        if self._owned_service is not None and self._owned_service.running:
            try:
                await self._owned_service.stop()
            except Exception as e:
                self._log.error(f"Failed to stop web server: {e}")
                self._exit_code = EXIT_FATAL

        try:
            await self._server.aclose()
        except Exception as e:
            self._log.error(f"Failed to close server: {e}")
            self._exit_code = EXIT_FATAL

        self._timer.cancel()
        self._server.lifecycle.terminate()
        self._log.info(f"Shutdown complete (exit code {self._exit_code})")

    def _kill_owned_service(self) -> None:
        if self._owned_service is not None and self._owned_service.running:
            self._owned_service.kill()

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled event loop error")
        self._log.opt(exception=exc).error(message)
        self.request_shutdown("uncaught fault", EXIT_FATAL)

    def _install_signal_handlers(self) -> None:
        assert self._loop is not None
        for sig in HANDLED_SIGNALS:
            try:
                self._loop.add_signal_handler(sig, self.handle_signal, sig)
            except (NotImplementedError, RuntimeError, ValueError):
                # Unsupported platform or not the main thread
                self._log.debug(f"Cannot install handler for {sig.name}")
                continue
            self._signals.append(sig)

    def _remove_signal_handlers(self) -> None:
        assert self._loop is not None
        for sig in self._signals:
            self._loop.remove_signal_handler(sig)
        self._signals.clear()
