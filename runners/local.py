# runners/local.py
import asyncio
import logging
from typing import Optional, Sequence

from .base import BaseRunner, CommandError

logger = logging.getLogger(__name__)

class LocalRunner(BaseRunner):
    """Runs commands on this host as child processes of the event loop."""

    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        full_argv = self.build_argv(argv)
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"Running: {' '.join(full_argv)}")
        try:
            process = await asyncio.create_subprocess_exec(
                *full_argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CommandError(full_argv, stderr=str(e)) from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise CommandError(full_argv, stderr=f"timed out after {timeout}s")

        if process.returncode != 0:
            raise CommandError(full_argv, process.returncode, stderr.decode(errors="replace"))
        return stdout.decode(errors="replace")
