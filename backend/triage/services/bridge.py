"""
Bridge process adapter: a long-lived child speaking line-delimited JSON.

    parent -> child   {"frame": "<base64>", "timestamp": <ms>}
    child  -> parent  {"bpm": <n>, "hrv": <n>, "confidence": <0..1>}
    parent -> child   {"end": true}          (end of session)

One request may be in flight at a time. The request slot moves
idle -> awaiting reply -> idle; a reply line that arrives while the slot is
idle (late reply after a timeout, stray output) is dropped. The child's
stderr is inherited so its diagnostics land in the server log.
"""
import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Optional

from triage.errors import BackendUnavailable, BridgeBusy, BridgeExited, BridgeTimeout
from triage.models import BiometricReading
from triage.services.vitals_api import ReadingDefaults, decode_reading

logger = logging.getLogger(__name__)

END_OF_SESSION = b'{"end": true}\n'


def decode_reply(line: str, timestamp: int, defaults: ReadingDefaults = ReadingDefaults()) -> BiometricReading:
    """Reply line to reading; unparseable or partial replies fall back to defaults."""
    try:
        payload = json.loads(line)
    except ValueError:
        logger.warning("Bridge reply is not JSON, using defaults: %.200s", line)
        payload = None
    return decode_reading(payload, timestamp, defaults)


class BridgeProcess:
    def __init__(self, process: asyncio.subprocess.Process, session_id: str):
        self._process = process
        self.session_id = session_id
        self._pending: Optional[asyncio.Future] = None
        self._reader = asyncio.create_task(self._read_replies())

    @classmethod
    async def spawn(
        cls, command: list[str], session_id: str, api_key: Optional[str] = None
    ) -> "BridgeProcess":
        # A wrapped script that does not exist would only fail after the interpreter starts
        if len(command) > 1 and not Path(command[-1]).exists():
            raise BackendUnavailable(f"Bridge script not found: {command[-1]}")
        env = os.environ.copy()
        if api_key:
            env["PRESAGE_API_KEY"] = api_key
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=None,
                env=env,
            )
        except OSError as e:
            raise BackendUnavailable(f"Failed to start bridge {command[0]}: {e}") from e
        logger.info("Bridge started for session %s (pid %d)", session_id, process.pid)
        return cls(process, session_id)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def awaiting_reply(self) -> bool:
        return self._pending is not None

    async def _read_replies(self) -> None:
        stdout = self._process.stdout
        while True:
            try:
                raw = await stdout.readline()
            except ValueError:
                logger.warning("Bridge line over buffer limit dropped (session %s)", self.session_id)
                continue
            if not raw:
                break
            line = raw.decode(errors="replace").strip()
            if not line:
                continue
            pending = self._pending
            if pending is None or pending.done():
                logger.debug("Dropping unsolicited bridge line (session %s): %.200s", self.session_id, line)
                continue
            pending.set_result(line)

        returncode = await self._process.wait()
        logger.info("Bridge for session %s exited with %s", self.session_id, returncode)
        pending = self._pending
        if pending is not None and not pending.done():
            pending.set_exception(BridgeExited(returncode))

    async def _exit_status(self, wait: float = 0.5) -> Optional[int]:
        """Return code once the child is reaped, or None if it is still running after `wait`."""
        try:
            return await asyncio.wait_for(self._process.wait(), wait)
        except asyncio.TimeoutError:
            return None

    async def _send_and_await(self, message: bytes, pending: asyncio.Future) -> str:
        try:
            self._process.stdin.write(message)
            await self._process.stdin.drain()
        except ConnectionError as e:
            raise BridgeExited(await self._exit_status()) from e
        return await pending

    async def request(self, frame: str, timestamp: int, timeout: float) -> str:
        """
        Send one frame and wait for exactly one reply line.

        The bound covers the write as well as the reply, so a child that has
        stopped reading stdin times out instead of blocking on a full pipe.
        """
        if self._pending is not None:
            raise BridgeBusy(f"Bridge request already in flight for session {self.session_id}")
        if self._reader.done():
            raise BridgeExited(self._process.returncode)

        pending = asyncio.get_running_loop().create_future()
        self._pending = pending
        message = (json.dumps({"frame": frame, "timestamp": timestamp}) + "\n").encode()
        try:
            return await asyncio.wait_for(self._send_and_await(message, pending), timeout)
        except asyncio.TimeoutError:
            raise BridgeTimeout(timeout) from None
        finally:
            self._pending = None
            if not pending.done():
                pending.cancel()
            elif not pending.cancelled():
                pending.exception()  # mark retrieved; the caller already got its error

    async def close(self, grace: float = 2.0) -> None:
        """
        Send end-of-session, close stdin, then SIGTERM (SIGKILL after `grace`).

        The end line is skipped while a frame is still being written or
        awaited, and its own write is bounded by `grace`; termination is
        always reached.
        """
        process = self._process
        try:
            stdin = process.stdin
            if stdin is not None and not stdin.is_closing():
                try:
                    idle = self._pending is None and stdin.transport.get_write_buffer_size() == 0
                    if process.returncode is None and idle:
                        stdin.write(END_OF_SESSION)
                        await asyncio.wait_for(stdin.drain(), grace)
                except asyncio.TimeoutError:
                    logger.debug("Bridge pid %d not reading stdin, skipping end-of-session", process.pid)
                except ConnectionError:
                    logger.debug("Bridge pid %d stdin already closed", process.pid)
                finally:
                    stdin.close()
        finally:
            if process.returncode is None:
                try:
                    process.terminate()
                except ProcessLookupError:
                    pass
                try:
                    await asyncio.wait_for(process.wait(), grace)
                except asyncio.TimeoutError:
                    logger.warning("Bridge pid %d ignored SIGTERM, killing", process.pid)
                    process.kill()
                    await process.wait()
            done, _ = await asyncio.wait({self._reader}, timeout=grace)
            if not done:
                self._reader.cancel()
