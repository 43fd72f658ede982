from typing import Optional


class VitalsError(Exception):
    """Base class for biometric pipeline failures surfaced to the HTTP layer."""


class SessionNotFound(VitalsError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class BackendUnavailable(VitalsError):
    """Bridge process could not be spawned or the backend is unreachable at setup."""


class BackendError(VitalsError):
    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class BridgeBusy(BackendError):
    """A bridge request is already in flight for this session."""


class BridgeExited(BackendError):
    def __init__(self, returncode: Optional[int]):
        if returncode is None:
            message = "Bridge stdin closed before the process exit status was known"
        elif returncode < 0:
            message = f"Bridge process exited (killed by signal {-returncode})"
        else:
            message = f"Bridge process exited (exit code {returncode})"
        super().__init__(message)
        self.returncode = returncode


class BridgeTimeout(VitalsError):
    def __init__(self, timeout: float):
        super().__init__(f"Bridge did not reply within {timeout:g}s")
        self.timeout = timeout


class EncodingError(VitalsError):
    """Frame buffer could not be turned into a video."""
