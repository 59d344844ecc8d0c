"""Exit codes and the fatal stage error used by the remote deploy driver."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    GENERIC = 1
    MISSING_CREDENTIAL = 2
    GIT = 3
    MISSING_DESCRIPTOR = 4
    SSH = 5
    PROVISIONING = 6
    TRANSFER = 7
    DEPLOY = 8
    HEALTH_CHECK = 9
    PROXY_CONFIG = 10
    PROXY_VALIDATION = 11
    INTERRUPTED = 130
    TERMINATED = 143


class DeployError(Exception):
    """A stage failed and the run must stop with `exit_code`."""

    def __init__(self, message: str, exit_code: ExitCode = ExitCode.GENERIC, *, context: str | None = None):
        self.message = message
        self.exit_code = exit_code
        self.context = context
        super().__init__(self.format())

    def format(self) -> str:
        if self.context:
            return f"{self.message}\n{self.context}"
        return self.message


class DeployInterrupted(Exception):
    """Raised from the SIGTERM handler so scoped cleanup still runs."""

    def __init__(self, signum: int):
        super().__init__(f"Received signal {signum}")
        self.signum = signum
