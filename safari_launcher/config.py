"""Launcher configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Host-facing keys accepted by LauncherConfig.from_args, mapped to model fields.
_ENDPOINT_KEYS = ('protocol', 'hostname', 'port', 'pathname')
_RETRY_KEY_ALIASES: dict[str, str] = {
	'maxAttempts': 'max_attempts',
	'max_attempts': 'max_attempts',
	'retryInterval': 'interval_seconds',
	'interval_seconds': 'interval_seconds',
}
_LAUNCHER_KEY_ALIASES: dict[str, str] = {
	'command': 'command',
	'tempDir': 'temp_dir',
	'temp_dir': 'temp_dir',
}


class WebDriverEndpoint(BaseModel):
	"""Where the safaridriver WebDriver endpoint listens."""

	model_config = ConfigDict(extra='forbid')

	protocol: str = 'http:'
	hostname: str = '127.0.0.1'
	port: int = Field(default=4444, ge=1, le=65535)
	pathname: str = '/'

	@property
	def url(self) -> str:
		scheme = self.protocol if self.protocol.endswith(':') else f'{self.protocol}:'
		pathname = self.pathname if self.pathname.startswith('/') else f'/{self.pathname}'
		return f'{scheme}//{self.hostname}:{self.port}{pathname}'

	def command_args(self) -> list[str]:
		"""Arguments telling safaridriver which port to listen on."""
		return ['-p', str(self.port)]


class RetryPolicy(BaseModel):
	"""Polling budget for attaching to a WebDriver endpoint that may still be starting."""

	model_config = ConfigDict(extra='forbid')

	max_attempts: int = Field(default=10, ge=1)
	interval_seconds: float = Field(default=0.5, ge=0)


class LauncherConfig(BaseModel):
	model_config = ConfigDict(extra='forbid')

	endpoint: WebDriverEndpoint = Field(default_factory=WebDriverEndpoint)
	retry: RetryPolicy = Field(default_factory=RetryPolicy)
	command: str | None = None
	temp_dir: str | None = None

	@classmethod
	def from_args(cls, args: dict[str, Any] | None) -> LauncherConfig:
		"""Build a config from the flat dict a host passes as launcher ``config``.

		Endpoint keys override the defaults one by one, so ``{'port': 5555}`` keeps
		the default protocol, hostname and pathname. Unknown keys fail validation.
		"""
		endpoint: dict[str, Any] = {}
		retry: dict[str, Any] = {}
		launcher: dict[str, Any] = {}
		for key, value in (args or {}).items():
			if key in _ENDPOINT_KEYS:
				endpoint[key] = value
			elif key in _RETRY_KEY_ALIASES:
				retry[_RETRY_KEY_ALIASES[key]] = value
			elif key in _LAUNCHER_KEY_ALIASES:
				launcher[_LAUNCHER_KEY_ALIASES[key]] = value
			else:
				# Let pydantic report the unknown key with its usual error shape.
				launcher[key] = value
		return cls(endpoint=WebDriverEndpoint(**endpoint), retry=RetryPolicy(**retry), **launcher)
