import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs install commands; stdout and stderr go straight to the terminal."""

    def which(self, cli_name: str) -> Optional[str]:
        return shutil.which(cli_name)

    async def run(self, command: str, cwd: Optional[Path] = None) -> int:
        """
        Run a shell command and wait for it.

        Returns:
            The command's exit code
        """
        logger.debug("running %s in %s", command, cwd or ".")
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(cwd) if cwd else None,
        )
        return await process.wait()
