"""Starting and stopping the safaridriver / Safari processes."""

from __future__ import annotations

import logging
import subprocess
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ProcessLauncher(Protocol):
	def start_process(self, args: list[str]) -> None: ...

	def terminate(self) -> None: ...


class SubprocessLauncher:
	"""Fire-and-forget launcher for a single browser or driver binary."""

	def __init__(self, command: str, terminate_timeout: float = 5.0):
		self.command = command
		self.terminate_timeout = terminate_timeout
		self._process: subprocess.Popen[bytes] | None = None

	@property
	def is_running(self) -> bool:
		return self._process is not None and self._process.poll() is None

	def start_process(self, args: list[str]) -> None:
		if self.is_running:
			logger.debug(f'{self.command} already running (pid {self._process.pid}), not starting another')  # type: ignore[union-attr]
			return
		logger.debug(f'Starting {self.command} {" ".join(args)}')
		self._process = subprocess.Popen(
			[self.command, *args],
			stdin=subprocess.DEVNULL,
			stdout=subprocess.DEVNULL,
			stderr=subprocess.DEVNULL,
		)

	def terminate(self) -> None:
		process = self._process
		self._process = None
		if process is None or process.poll() is not None:
			return
		process.terminate()
		try:
			process.wait(timeout=self.terminate_timeout)
		except subprocess.TimeoutExpired:
			logger.warning(f'{self.command} did not exit after {self.terminate_timeout:.1f}s, killing it')
			process.kill()
			process.wait()
