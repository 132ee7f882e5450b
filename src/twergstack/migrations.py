"""
Schema migrations for Twergstack

The schema (tables, index_status enum and stored procedures) lives in SQL
files under migrations/ and is applied by an external migration tool run as
a child process. Its output is streamed line by line into the log.
"""

import asyncio
import logging
import os
import shlex
import time
from pathlib import Path
from typing import List, Optional

from .config import TwergstackConfig
from .errors import ConfigError, IOFailureError
from .logging_config import ChildProcessLog, mask_sensitive_data

logger = logging.getLogger(__name__)


class MigrationRunner:
    """Runs the migration tool against the configured database."""

    def __init__(self, config: TwergstackConfig, database_url: Optional[str] = None):
        self.config = config
        self.database_url = database_url or config.effective_database_url()

    def _command(self, direction: str) -> List[str]:
        command = shlex.split(self.config.migration_command)
        if not command:
            raise ConfigError("migration_command is empty")
        return command + [direction]

    @staticmethod
    async def _collect_output(
        process: asyncio.subprocess.Process, tool: str, transcript: ChildProcessLog
    ) -> List[str]:
        """Read the tool's merged output until EOF, logging each line."""
        lines = []
        while True:
            try:
                raw = await process.stdout.readline()
            except ValueError as e:
                # StreamReader refuses lines longer than its buffer limit
                raise IOFailureError(f"Output line of {tool} exceeds the read limit: {e}") from e
            except OSError as e:
                raise IOFailureError(f"Could not read from piped output of {tool}: {e}") from e
            if not raw:
                return lines
            line = raw.decode("utf-8", errors="replace").rstrip()
            lines.append(line)
            transcript.line(line)
            logger.debug(f"{tool}: {line}")

    async def run(self, direction: str) -> List[str]:
        """
        Run one migration direction (``up`` or ``down``).

        Returns:
            The output lines of the tool

        Raises:
            ConfigError: If no database is configured
            IOFailureError: If the tool cannot be started or exits non-zero
        """
        if not self.database_url:
            raise ConfigError("Database not configured. Set TWERGSTACK_DATABASE_URL or DATABASE_URL")

        command = self._command(direction)
        env = dict(os.environ, DATABASE_URL=self.database_url)
        cwd = Path(self.config.migrations_path).parent

        logger.debug(f"Migration {direction} against {mask_sensitive_data(self.database_url)}")

        with ChildProcessLog(f"migration_{direction}", self.config.log_dir) as transcript:
            transcript.command(command)
            start_time = time.time()
            try:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                    env=env,
                    cwd=str(cwd) if cwd.exists() else None,
                )
            except OSError as e:
                raise IOFailureError(f"Failed to execute {command[0]}: {e}") from e

            try:
                lines = await self._collect_output(process, command[0], transcript)
                return_code = await process.wait()
            finally:
                if process.returncode is None:
                    process.kill()
                    await process.wait()
                transcript.finished(process.returncode, time.time() - start_time)

        if return_code != 0:
            tail = lines[-1] if lines else "no output"
            raise IOFailureError(
                f"Migration {direction} failed with exit code {return_code}: {tail}"
            )

        logger.info(f"Migration {direction} completed")
        return lines

    async def up(self) -> List[str]:
        return await self.run("up")

    async def down(self) -> List[str]:
        return await self.run("down")

    async def reset(self) -> List[str]:
        """Revert then re-apply every migration."""
        logger.info("Resetting database schema")
        return await self.down() + await self.up()
