"""
Host-environment capabilities for the scan step.

The step never touches the working directory, the filesystem, external
commands or telemetry directly; it goes through a ``StepUtils`` object so
tests can substitute stubs.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from pathlib import Path
from typing import Any, BinaryIO, Dict, Protocol

from ...scanner.errors import CommandError

logger = logging.getLogger(__name__)
telemetry_logger = logging.getLogger("onapsis_scan.telemetry")


class StepUtils(Protocol):
    def getcwd(self) -> str: ...

    def file_exists(self, path: Path | str) -> bool: ...

    def open(self, path: Path | str, mode: str = "rb") -> BinaryIO: ...

    def run_executable(self, executable: str, *args: str) -> int: ...

    def emit_telemetry(self, payload: Dict[str, Any]) -> None: ...


class StepUtilsBundle:
    """Default ``StepUtils`` backed by the real process environment."""

    def getcwd(self) -> str:
        return os.getcwd()

    def file_exists(self, path: Path | str) -> bool:
        return Path(path).is_file()

    def open(self, path: Path | str, mode: str = "rb") -> BinaryIO:
        return open(path, mode)

    def run_executable(self, executable: str, *args: str) -> int:
        """Run an external command, forwarding its output to the log.

        Raises:
            CommandError: If the command cannot be started or exits non-zero.
        """
        command = [executable, *args]
        logger.info("Running command: %s", " ".join(command))
        try:
            completed = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as exc:
            raise CommandError(f"failed to run {executable}: {exc}", returncode=-1) from exc

        for line in completed.stdout.splitlines():
            logger.info(line)
        for line in completed.stderr.splitlines():
            logger.warning(line)

        if completed.returncode != 0:
            raise CommandError(
                f"{executable} exited with status {completed.returncode}",
                returncode=completed.returncode,
            )
        return completed.returncode

    def emit_telemetry(self, payload: Dict[str, Any]) -> None:
        telemetry_logger.debug(json.dumps(payload, sort_keys=True))
