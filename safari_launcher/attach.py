"""Attach to a running safaridriver, or start one and poll until it answers.

The first refused connection means safaridriver is not running yet: the
driver process is started once and the session is retried straight away.
Later refusals sleep a fixed interval between attempts until the retry budget
is spent. Any other error is final.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from safari_launcher.config import RetryPolicy
from safari_launcher.session_client import SessionClient, SessionHandle, is_connection_refused

Sleep = Callable[[float], Awaitable[None]]


def _default_capabilities() -> dict[str, Any]:
	return {'browserName': 'safari', 'allowW3C': True}


class SessionTarget(BaseModel):
	"""What one launch should open: the URL to load and the capabilities to ask for."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	target_url: str
	capabilities: dict[str, Any] = Field(default_factory=_default_capabilities)


class RetryState(BaseModel):
	model_config = ConfigDict(extra='forbid', validate_assignment=True)

	attempt_count: int = Field(default=0, ge=0)
	max_attempts: int = Field(default=10, ge=1)
	interval_seconds: float = Field(default=0.5, ge=0)

	@classmethod
	def from_policy(cls, policy: RetryPolicy) -> RetryState:
		return cls(max_attempts=policy.max_attempts, interval_seconds=policy.interval_seconds)

	@property
	def exhausted(self) -> bool:
		return self.attempt_count > self.max_attempts


class OutcomeKind(str, Enum):
	SUCCESS = 'success'
	CONNECTION_REFUSED = 'connection_refused'
	OTHER_ERROR = 'other_error'


class ConnectionOutcome(BaseModel):
	"""Result of one initialize call, classified for the retry loop."""

	model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

	kind: OutcomeKind
	session: SessionHandle | None = None
	error: BaseException | None = None


def classify_outcome(result: SessionHandle | BaseException) -> ConnectionOutcome:
	if isinstance(result, SessionHandle):
		return ConnectionOutcome(kind=OutcomeKind.SUCCESS, session=result)
	if is_connection_refused(result):
		return ConnectionOutcome(kind=OutcomeKind.CONNECTION_REFUSED, error=result)
	return ConnectionOutcome(kind=OutcomeKind.OTHER_ERROR, error=result)


class AttachState(str, Enum):
	INIT = 'init'
	WAITING_FIRST_ATTEMPT = 'waiting_first_attempt'
	RETRYING = 'retrying'
	SUCCEEDED = 'succeeded'
	FAILED = 'failed'


class LaunchError(RuntimeError):
	"""Base class for launches that never reached a usable session."""


class LaunchTimeoutError(LaunchError):
	"""The endpoint kept refusing connections until the retry budget ran out."""

	def __init__(self, attempts: int):
		super().__init__(f'WebDriver endpoint still refusing connections after {attempts} attempts')
		self.attempts = attempts


class DriverError(LaunchError):
	"""Session initialization failed for a reason other than a refused connection."""

	def __init__(self, details: BaseException):
		super().__init__(f'{type(details).__name__}: {details}')
		self.details = details


class AttachOrLaunch:
	"""One attach attempt for one SessionTarget; create a new instance per launch."""

	def __init__(
		self,
		session_client: SessionClient,
		start_driver: Callable[[], None],
		retry: RetryPolicy | None = None,
		sleep: Sleep = asyncio.sleep,
		logger: logging.Logger | None = None,
	):
		self.session_client = session_client
		self.start_driver = start_driver
		self.retry = retry or RetryPolicy()
		self.sleep = sleep
		self.logger = logger or logging.getLogger(__name__)
		self.state = AttachState.INIT
		self.retry_state = RetryState.from_policy(self.retry)
		self.failure: LaunchError | None = None

	async def _initialize(self, target: SessionTarget) -> ConnectionOutcome:
		self.retry_state.attempt_count += 1
		try:
			session = await self.session_client.initialize_session(dict(target.capabilities))
		except Exception as exc:
			return classify_outcome(exc)
		return classify_outcome(session)

	def _fail(self, error: LaunchError) -> LaunchError:
		self.state = AttachState.FAILED
		self.failure = error
		return error

	async def run(self, target: SessionTarget) -> SessionHandle:
		"""Open a session for ``target`` and navigate it to ``target.target_url``.

		Raises LaunchTimeoutError when the budget is spent and DriverError on any
		non-connection failure.
		"""
		self.retry_state = RetryState.from_policy(self.retry)
		self.state = AttachState.INIT
		self.failure = None
		retry_state = self.retry_state

		while True:
			outcome = await self._initialize(target)
			attempt = retry_state.attempt_count

			session = outcome.session
			if outcome.kind is OutcomeKind.SUCCESS and session is not None:
				self.logger.debug('Connected to Safari WebDriver')
				self.logger.debug(f'Connecting to {target.target_url}')
				try:
					await self.session_client.navigate_to(target.target_url)
				except Exception as exc:
					raise self._fail(DriverError(exc)) from exc
				self.state = AttachState.SUCCEEDED
				return session

			if outcome.kind is not OutcomeKind.CONNECTION_REFUSED:
				raise self._fail(DriverError(outcome.error or RuntimeError('session initialize returned no session')))

			self.logger.debug(f'attach {attempt} of {retry_state.max_attempts}')
			if self.state is AttachState.INIT:
				self.logger.debug('WebDriver endpoint is not running, starting it')
				self.state = AttachState.WAITING_FIRST_ATTEMPT
				self.start_driver()
				continue

			if retry_state.exhausted:
				raise self._fail(LaunchTimeoutError(attempt))

			self.state = AttachState.RETRYING
			self.logger.debug(
				f'Going to give the driver time to start-up. Sleeping for {retry_state.interval_seconds * 1000:.0f}ms.'
			)
			await self.sleep(retry_state.interval_seconds)
			self.logger.debug('Awoke to retry.')
