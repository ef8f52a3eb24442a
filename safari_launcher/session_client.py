"""Async WebDriver session client used by the Safari launchers.

Selenium calls are blocking, so they run behind ``asyncio.to_thread()`` and the
host's event loop keeps serving other launchers while a session is created.
"""

from __future__ import annotations

import asyncio
import errno
import logging
from collections.abc import Callable
from typing import Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, validate_call

from safari_launcher.config import WebDriverEndpoint

T = TypeVar('T')

logger = logging.getLogger(__name__)

# Capabilities the wd-style config carries that Selenium 4 implies on its own.
_IMPLIED_CAPABILITIES = frozenset({'browserName', 'allowW3C'})


class SessionHandle(BaseModel):
	"""An open WebDriver session."""

	model_config = ConfigDict(extra='forbid')

	session_id: str
	capabilities: dict[str, Any] = Field(default_factory=dict)


class SessionNotStartedError(RuntimeError):
	"""Raised when navigating a session that was never initialized."""


@runtime_checkable
class SessionClient(Protocol):
	@property
	def has_session(self) -> bool: ...

	async def initialize_session(self, capabilities: dict[str, Any]) -> SessionHandle: ...

	async def navigate_to(self, url: str) -> None: ...

	async def teardown_session(self) -> None: ...


def is_connection_refused(exc: BaseException) -> bool:
	"""Whether ``exc`` (or anything it wraps) is a refused TCP connection.

	urllib3 wraps the socket error twice (``MaxRetryError.reason`` holding a
	``NewConnectionError`` raised from the ``ConnectionRefusedError``), so the
	check follows ``__cause__``, ``__context__`` and ``reason`` links.
	"""
	seen: set[int] = set()
	pending: list[BaseException] = [exc]
	while pending:
		current = pending.pop()
		if id(current) in seen:
			continue
		seen.add(id(current))

		if isinstance(current, ConnectionRefusedError):
			return True
		if getattr(current, 'errno', None) == errno.ECONNREFUSED:
			return True

		for linked in (current.__cause__, current.__context__, getattr(current, 'reason', None)):
			if isinstance(linked, BaseException):
				pending.append(linked)
	return False


class SeleniumSessionClient:
	"""Thin async wrapper around a Selenium ``Remote`` session on safaridriver."""

	def __init__(self, endpoint: WebDriverEndpoint | None = None, command_timeout: float = 45.0):
		self.endpoint = endpoint or WebDriverEndpoint()
		self.command_timeout = command_timeout
		self._driver: Any | None = None
		self._lock = asyncio.Lock()

	@property
	def has_session(self) -> bool:
		return self._driver is not None

	def _require_driver(self) -> Any:
		if self._driver is None:
			raise SessionNotStartedError('No WebDriver session. Call await initialize_session() first.')
		return self._driver

	async def _run_sync(self, operation: Callable[[], T], timeout: float | None = None) -> T:
		"""Run a blocking Selenium operation in a thread with timeout."""
		return await asyncio.wait_for(asyncio.to_thread(operation), timeout=timeout or self.command_timeout)

	def _build_options(self, capabilities: dict[str, Any]) -> Any:
		from selenium.webdriver.safari.options import Options as SafariOptions

		options = SafariOptions()
		for name, value in capabilities.items():
			if name in _IMPLIED_CAPABILITIES:
				continue
			options.set_capability(name, value)
		return options

	@validate_call
	async def initialize_session(self, capabilities: dict[str, Any]) -> SessionHandle:
		"""Open a new session on the endpoint; connection errors propagate unchanged."""
		async with self._lock:
			if self._driver is not None:
				return SessionHandle(session_id=str(self._driver.session_id), capabilities=dict(self._driver.capabilities))

			logger.debug(f'[command] CALL init {capabilities} at {self.endpoint.url}')

			def _init_sync() -> Any:
				try:
					from selenium import webdriver
				except ImportError as exc:
					raise RuntimeError('Selenium is required for Safari support. Install with `pip install selenium`.') from exc

				return webdriver.Remote(command_executor=self.endpoint.url, options=self._build_options(capabilities))

			driver = await self._run_sync(_init_sync)
			self._driver = driver
			logger.debug(f'[command] RESPONSE init {driver.session_id}')
			return SessionHandle(session_id=str(driver.session_id), capabilities=dict(driver.capabilities))

	@validate_call
	async def navigate_to(self, url: str) -> None:
		async with self._lock:
			driver = self._require_driver()
			logger.debug(f'[command] CALL get {url}')
			await self._run_sync(lambda: driver.get(url))

	async def teardown_session(self) -> None:
		"""Quit the current session; a no-op when there is none."""
		async with self._lock:
			if self._driver is None:
				return
			driver = self._driver
			self._driver = None

		logger.debug(f'[command] CALL quit {driver.session_id}')
		await self._run_sync(driver.quit)
