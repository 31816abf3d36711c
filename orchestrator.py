import asyncio
import enum
import logging
import os
import signal
import sys

from colorama import Fore, Style

from bootstrap import ConfigBootstrapper, default_config_files
from process import ProcessHandle, Role

logger = logging.getLogger("Orchestrator")

# Launch settings
BACKEND_DIR = "backend"
BACKEND_CMD = ["node", "server-dev.js"]
FRONTEND_PORT = 8080
FRONTEND_DELAY = 3.0  # seconds between backend and frontend spawn
SHUTDOWN_GRACE = 5.0  # seconds to let terminated children report exit

ROLE_COLORS = {Role.BACKEND: Fore.CYAN, Role.FRONTEND: Fore.MAGENTA}


def frontend_cmd(port=FRONTEND_PORT):
    return ["npm", "run", "dev", "--", "--port", str(port)]


class State(enum.Enum):
    IDLE = "idle"
    CONFIGURING_ENV = "configuring-env"
    STARTING_BACKEND = "starting-backend"
    AWAITING_FRONTEND = "awaiting-frontend-delay"
    BOTH_RUNNING = "both-running"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"


class Relay:
    """Prints child output with a per-role prefix."""

    def __init__(self, color=True, out=None, err=None):
        self.color = color
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    def prefix(self, role, stream):
        label = f"[{role.value} Error]" if stream == "stderr" else f"[{role.value}]"
        if not self.color:
            return label
        tint = Fore.RED if stream == "stderr" else ROLE_COLORS.get(role, "")
        return f"{tint}{label}{Style.RESET_ALL}"

    def line(self, role, stream, text):
        target = self.err if stream == "stderr" else self.out
        target.write(f"{self.prefix(role, stream)} {text}\n")
        target.flush()


def exit_status(code, sig):
    """Session status for a backend exit: its code, or 128+N when killed by signal N."""
    if code is not None:
        return code
    return 128 + sig if sig else 1


class Orchestrator:
    """
    Bootstraps config, starts the backend, starts the frontend after
    `delay` seconds and stops both when a signal arrives or the backend
    goes away. One instance per session; call `await run()`.
    """

    def __init__(self, root, delay=FRONTEND_DELAY, port=FRONTEND_PORT, relay=None,
                 bootstrapper=None, handle_factory=ProcessHandle,
                 install_signals=True, grace=SHUTDOWN_GRACE):
        self.root = root
        self.delay = delay
        self.port = port
        self.relay = relay or Relay()
        self.bootstrapper = bootstrapper or ConfigBootstrapper(default_config_files(root))
        self.handle_factory = handle_factory
        self.install_signals = install_signals
        self.grace = grace

        self.state = State.IDLE
        self.exit_code = None
        self.handles = {}  # Role -> handle, at most one each
        self._timer = None
        self._done = None
        self._signals = []  # (signum, via_loop, previous handler)

    # ---- lifecycle ----

    async def run(self):
        self.state = State.CONFIGURING_ENV
        try:
            self.bootstrapper.ensure()
        except OSError as e:
            # ConfigMissing or any other read/write failure
            logger.error(f"Configuration bootstrap failed: {e}")
            print("❌ Cannot start without configuration. Aborting.")
            self.exit_code = 1
            self.state = State.TERMINATED
            return self.exit_code

        loop = asyncio.get_running_loop()
        self._done = asyncio.Event()
        if self.install_signals:
            self._install_signal_handlers(loop)

        try:
            self.state = State.STARTING_BACKEND
            print("🔧 Starting backend server in mock mode...")
            self._spawn(Role.BACKEND, BACKEND_CMD, os.path.join(self.root, BACKEND_DIR))

            if self.state is State.STARTING_BACKEND:
                self.state = State.AWAITING_FRONTEND
                self._timer = loop.call_later(self.delay, self._start_frontend)

            await self._done.wait()
            await self._drain()
        finally:
            if self._timer:
                self._timer.cancel()
            self._remove_signal_handlers(loop)
            self.state = State.TERMINATED

        print(f"👋 Session ended (exit status {self.exit_code}).")
        return self.exit_code

    def shutdown(self, exit_code=0, reason="shutdown requested"):
        """Stop every handle that exists. The first call decides the exit status."""
        if self.state in (State.SHUTTING_DOWN, State.TERMINATED):
            logger.debug(f"Ignoring '{reason}', already {self.state.value}")
            return
        self.state = State.SHUTTING_DOWN
        self.exit_code = exit_code
        logger.info(f"Shutting down: {reason}")
        print("\n🛑 Shutting down servers...")

        if self._timer:
            self._timer.cancel()
            self._timer = None
        for handle in self.handles.values():
            handle.terminate()
        if self._done is not None:
            self._done.set()

    async def _drain(self):
        pending = [asyncio.ensure_future(h.wait()) for h in self.handles.values()]
        if not pending:
            return
        _, still_running = await asyncio.wait(pending, timeout=self.grace)
        for fut in still_running:
            fut.cancel()
        if still_running:
            logger.warning(f"{len(still_running)} process(es) still running after {self.grace}s grace period")

    # ---- processes ----

    def _spawn(self, role, command, cwd):
        if role in self.handles:
            raise RuntimeError(f"{role.value} process already exists")
        handle = self.handle_factory(
            role, command, cwd,
            on_output=self._on_output,
            on_exit=self._on_exit,
            on_spawn_error=self._on_spawn_error,
        )
        self.handles[role] = handle
        handle.start()
        return handle

    def _start_frontend(self):
        self._timer = None
        if self.state is not State.AWAITING_FRONTEND:
            return
        print("\n🎨 Starting frontend development server...")
        self._spawn(Role.FRONTEND, frontend_cmd(self.port), self.root)
        if self.state is State.AWAITING_FRONTEND:
            self.state = State.BOTH_RUNNING

    def _on_output(self, handle, stream, text):
        self.relay.line(handle.role, stream, text)

    def _on_exit(self, handle, code, sig):
        how = f"code {code}" if code is not None else f"signal {sig}"
        if self.state is State.SHUTTING_DOWN:
            logger.info(f"{handle.role.value} process exited with {how}")
        elif handle.role is Role.BACKEND:
            print(f"\n🛑 Backend process exited with {how}")
            status = exit_status(code, sig)
            if status != 0:
                logger.error(f"Backend exited unexpectedly ({how})")
            self.shutdown(status, reason=f"backend exited with {how}")
        elif code == 0:
            logger.info(f"Frontend process exited with {how}")
        else:
            logger.error(f"Frontend process exited with {how}; backend left running")

    def _on_spawn_error(self, handle, exc):
        logger.error(f"❌ Failed to start {handle.role.value.lower()}: {exc}")
        self.shutdown(1, reason=f"{handle.role.value.lower()} spawn failure")

    # ---- signals ----

    def _on_signal(self, signum):
        name = signal.Signals(signum).name
        logger.info(f"Received {name}")
        self.shutdown(0, reason=name)

    def _install_signal_handlers(self, loop):
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._on_signal, signum)
                self._signals.append((signum, True, None))
            except NotImplementedError:
                # Windows event loops: fall back to a plain handler
                previous = signal.signal(
                    signum, lambda s, f: loop.call_soon_threadsafe(self._on_signal, s)
                )
                self._signals.append((signum, False, previous))

    def _remove_signal_handlers(self, loop):
        while self._signals:
            signum, via_loop, previous = self._signals.pop()
            if via_loop:
                loop.remove_signal_handler(signum)
            else:
                signal.signal(signum, previous)
