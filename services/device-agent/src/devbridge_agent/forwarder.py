"""Local forwarder process management.

A forwarder is a bridge binary that dials out to the cloud backend and
forwards incoming tunnel traffic to the local service port.
"""

import asyncio
import contextlib
import os

import structlog

logger = structlog.get_logger()

OUTPUT_TAIL_LINES = 20
OUTPUT_DRAIN_TIMEOUT = 1.0


class ForwarderError(Exception):
    """Raised when a forwarder cannot be started or stopped."""


class ForwarderProcess:
    """One forwarder subprocess.

    A process that exits before the startup grace period elapses counts as a
    failed start.
    """

    def __init__(
        self,
        argv: list[str],
        env: dict[str, str] | None = None,
        startup_grace: float = 2.0,
        stop_timeout: float = 10.0,
    ) -> None:
        if not argv:
            raise ForwarderError("Forwarder command is empty")
        self.argv = argv
        self.env = env or {}
        self.startup_grace = startup_grace
        self.stop_timeout = stop_timeout
        self.process: asyncio.subprocess.Process | None = None
        self._output: list[str] = []
        self._read_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self.process is not None and self.process.returncode is None

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    async def start(self) -> None:
        """Spawn the forwarder and wait out the startup grace period.

        Raises:
            ForwarderError: If the binary cannot be executed or exits early
        """
        if self.running:
            return

        try:
            self.process = await asyncio.create_subprocess_exec(
                *self.argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env={**os.environ, **self.env},
            )
        except OSError as e:
            raise ForwarderError(f"Unable to launch {self.argv[0]}: {e}") from e

        self._read_task = asyncio.create_task(self._read_output())

        try:
            returncode = await asyncio.wait_for(self.process.wait(), timeout=self.startup_grace)
        except TimeoutError:
            logger.info("Forwarder started", command=self.argv[0], pid=self.process.pid)
            return

        await self._finish_reading()
        tail = "\n".join(self._output[-OUTPUT_TAIL_LINES:])
        logger.error(
            "Forwarder exited during startup",
            command=self.argv[0],
            returncode=returncode,
            output=tail,
        )
        raise ForwarderError(f"{self.argv[0]} exited with code {returncode} during startup")

    async def stop(self) -> None:
        """Terminate the forwarder, killing it if it does not exit in time.

        Raises:
            ForwarderError: If the process could not be signalled
        """
        if self.process is None:
            return

        if self.process.returncode is None:
            try:
                self.process.terminate()
                try:
                    await asyncio.wait_for(self.process.wait(), timeout=self.stop_timeout)
                except TimeoutError:
                    logger.warning("Forwarder did not terminate, killing", pid=self.process.pid)
                    self.process.kill()
                    await self.process.wait()
            except ProcessLookupError:
                pass
            except OSError as e:
                raise ForwarderError(f"Unable to stop {self.argv[0]}: {e}") from e

        await self._finish_reading()
        logger.info(
            "Forwarder stopped",
            command=self.argv[0],
            returncode=self.process.returncode,
        )
        self.process = None

    async def _read_output(self) -> None:
        if self.process is None or self.process.stdout is None:
            return
        stdout = self.process.stdout
        while True:
            try:
                raw = await stdout.readline()
            except ValueError:
                # Over the stream limit; readline has already discarded it
                logger.debug("Forwarder output line too long, skipped")
                continue
            if not raw:
                break
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            self._output.append(line)
            del self._output[:-OUTPUT_TAIL_LINES]
            logger.debug("Forwarder output", line=line)

    async def _finish_reading(self) -> None:
        task = self._read_task
        if task is None:
            return
        self._read_task = None
        # stdout closes when the process exits; wait_for cancels a stuck reader
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(task, timeout=OUTPUT_DRAIN_TIMEOUT)
