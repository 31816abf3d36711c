import asyncio
import enum
import logging
import os
import shutil
import signal

logger = logging.getLogger("ProcessHandle")

LINE_LIMIT = 1024 * 1024  # longest single output line we will buffer
DRAIN_TIMEOUT = 1.0  # seconds to finish reading pipes after the child exits
IS_WINDOWS = os.name == "nt"


class Role(enum.Enum):
    BACKEND = "Backend"
    FRONTEND = "Frontend"


class ProcessState(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"
    FAILED = "failed"  # never spawned


def _resolve(command):
    exe = shutil.which(command[0])
    return [exe or command[0]] + list(command[1:])


class ProcessHandle:
    """
    Runs one external command with piped stdout/stderr and reports what
    happens to it through three callbacks:

      on_output(handle, stream, text)  -- once per line, stream is "stdout"/"stderr"
      on_exit(handle, code, sig)       -- exactly once, unless the spawn failed
      on_spawn_error(handle, exc)      -- exactly once, instead of on_exit

    code is None when the child was killed by a signal, sig is None otherwise.
    """

    def __init__(self, role, command, cwd, on_output=None, on_exit=None, on_spawn_error=None):
        self.role = role
        self.command = list(command)
        self.cwd = cwd
        self.on_output = on_output
        self.on_exit = on_exit
        self.on_spawn_error = on_spawn_error

        self.state = ProcessState.STARTING
        self.returncode = None
        self.proc = None
        self._task = None
        self._stop_requested = False

    @property
    def pid(self):
        return self.proc.pid if self.proc else None

    def start(self):
        """Initiate the spawn on the running loop and return immediately."""
        if self._task is not None:
            raise RuntimeError(f"{self.role.value} process already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"{self.role.value.lower()}-process"
        )
        return self

    async def wait(self):
        """Resolve once exit (or spawn failure) has been reported."""
        if self._task is not None:
            await asyncio.shield(self._task)

    def terminate(self):
        """Ask the child to stop. Does not wait for it."""
        self._stop_requested = True
        if self.proc is None or self.state is not ProcessState.RUNNING:
            return
        try:
            if IS_WINDOWS:
                self.proc.terminate()
            else:
                # Own process group: reach grandchildren such as the bundler under npm
                os.killpg(self.proc.pid, signal.SIGINT)
        except ProcessLookupError:
            logger.debug(f"{self.role.value} (PID {self.proc.pid}) already gone")
        except PermissionError:
            self.proc.send_signal(signal.SIGINT)

    async def _run(self):
        try:
            self.proc = await asyncio.create_subprocess_exec(
                *_resolve(self.command),
                cwd=self.cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=LINE_LIMIT,
                start_new_session=not IS_WINDOWS,
            )
        except OSError as e:
            self.state = ProcessState.FAILED
            logger.debug(f"Spawn of {self.command} failed: {e!r}")
            self._emit(self.on_spawn_error, e)
            return

        self.state = ProcessState.RUNNING
        logger.debug(f"{self.role.value} started [PID {self.proc.pid}]: {' '.join(self.command)}")
        if self._stop_requested:
            self.terminate()

        readers = [
            asyncio.create_task(self._pump(self.proc.stdout, "stdout")),
            asyncio.create_task(self._pump(self.proc.stderr, "stderr")),
        ]
        try:
            code = await self.proc.wait()
            _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT)
        finally:
            for t in readers:
                t.cancel()

        if pending:
            logger.debug(f"{self.role.value} pipes still open after exit, stopped reading")

        self.state = ProcessState.EXITED
        self.returncode = code
        if code < 0:
            self._emit(self.on_exit, None, -code)
        else:
            self._emit(self.on_exit, code, None)

    async def _pump(self, stream, name):
        head = None  # start of a line longer than LINE_LIMIT, rest discarded
        while True:
            eof = False
            try:
                raw = await stream.readuntil(b"\n")
            except asyncio.IncompleteReadError as e:
                raw, eof = e.partial, True
            except asyncio.LimitOverrunError as e:
                chunk = await stream.read(e.consumed)
                if head is None:
                    head = chunk[:LINE_LIMIT]
                continue
            if head is not None:
                logger.warning(f"{self.role.value} {name}: line longer than {LINE_LIMIT} bytes truncated")
                raw, head = head, None
            if raw:
                self._emit(self.on_output, name, raw.decode("utf-8", errors="replace").rstrip())
            if eof:
                break

    def _emit(self, callback, *args):
        if callback is not None:
            callback(self, *args)

    def __repr__(self):
        return f"<ProcessHandle {self.role.value} {self.state.value} pid={self.pid}>"
