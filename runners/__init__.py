# runners/__init__.py
from dynaconf import Dynaconf

from .base import BaseRunner, CommandError
from .local import LocalRunner
from .ssh import SSHRunner

__all__ = ["BaseRunner", "CommandError", "LocalRunner", "SSHRunner", "get_runner"]

def get_runner(config: Dynaconf) -> BaseRunner:
    """Runner factory: returns the command runner selected in the settings."""

    runner_type = config.general.runner
    use_sudo = config.general.use_sudo
    timeout = config.general.command_timeout

    if runner_type == "local":
        return LocalRunner(use_sudo=use_sudo, timeout=timeout)
    elif runner_type == "ssh":
        return SSHRunner(
            hostname=config.ssh.host,
            username=config.ssh.user,
            password=config.ssh.get("password"),
            port=config.ssh.get("port", 22),
            use_sudo=use_sudo,
            timeout=timeout,
        )
    else:
        raise ValueError(f"Unsupported runner type: {runner_type}")
