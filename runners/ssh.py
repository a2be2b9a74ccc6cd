# runners/ssh.py
import asyncio
import logging
import shlex
import threading
from typing import Optional, Sequence

import paramiko

from .base import BaseRunner, CommandError

logger = logging.getLogger(__name__)

class SSHRunner(BaseRunner):
    """Runs commands on the router/access point over SSH, using default keys and agent."""

    def __init__(self, hostname: str, username: str, password: Optional[str] = None,
                 port: int = 22, use_sudo: bool = False, timeout: float = 30):
        super().__init__(use_sudo=use_sudo, timeout=timeout)
        self.hostname = hostname
        self.username = username
        self.password = password
        self.port = port
        self.client: Optional[paramiko.SSHClient] = None
        self._lock = threading.Lock()

    def _connect(self) -> paramiko.SSHClient:
        """Returns a connected client, reconnecting if the transport dropped."""
        if self.client:
            transport = self.client.get_transport()
            if transport and transport.is_active():
                return self.client
            self.close()

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        client.connect(hostname=self.hostname, port=self.port, username=self.username,
                       password=self.password, timeout=self.timeout,
                       look_for_keys=self.password is None, allow_agent=self.password is None)
        self.client = client
        return client

    def _execute(self, argv: Sequence[str], timeout: float) -> str:
        command = shlex.join(argv)
        with self._lock:
            try:
                client = self._connect()
                _, stdout, stderr = client.exec_command(command, timeout=timeout)
                output = stdout.read().decode(errors="replace")
                error = stderr.read().decode(errors="replace")
                returncode = stdout.channel.recv_exit_status()
            except (paramiko.SSHException, OSError) as e:
                logger.error(f"Error executing command '{command}' on {self.hostname}: {e}")
                self.close()
                raise CommandError(argv, stderr=str(e)) from e

        if returncode != 0:
            raise CommandError(argv, returncode, error)
        if error:
            logger.debug(f"Command '{command}' wrote to stderr: {error.strip()}")
        return output

    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        full_argv = self.build_argv(argv)
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"Running on {self.hostname}: {' '.join(full_argv)}")
        return await asyncio.to_thread(self._execute, full_argv, timeout)

    def close(self):
        """Closes the SSH connection."""
        if self.client:
            self.client.close()
            self.client = None
