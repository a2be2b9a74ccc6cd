# runners/base.py
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence


class CommandError(Exception):
    """An external command exited non-zero, timed out, or could not be started."""

    def __init__(self, argv: Sequence[str], returncode: Optional[int] = None, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or ("timed out" if returncode is None else f"exit code {returncode}")
        super().__init__(f"{' '.join(self.argv)}: {detail}")


class BaseRunner(ABC):
    """Abstract base class for running system commands (arp-scan, iptables, hostapd_cli)."""

    def __init__(self, use_sudo: bool = False, timeout: float = 30):
        self.use_sudo = use_sudo
        self.timeout = timeout

    def build_argv(self, argv: Sequence[str]) -> List[str]:
        return (["sudo", "-n"] if self.use_sudo else []) + list(argv)

    @abstractmethod
    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        """Runs a command and returns its stdout.

        Raises:
            CommandError: if the command exits non-zero, times out or is missing.
        """
