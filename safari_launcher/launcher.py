"""Safari launchers a test runner host can load as plugins.

``SafariWebDriverLauncher`` drives Safari and Safari Technology Preview through
safaridriver. ``SafariLegacyLauncher`` opens old Safari builds on a local
redirect page instead. Both expose the host lifecycle as ``on_start(url)`` and
``on_kill(done)`` and as events on their ``event_bus``.
"""

from __future__ import annotations

import asyncio
import contextlib
import html
import json
import logging
import shutil
import tempfile
from collections.abc import Callable
from importlib.resources import files
from typing import Any

import anyio
from bubus import BaseEvent, EventBus
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from uuid_extensions import uuid7str

from safari_launcher.attach import AttachOrLaunch, LaunchError, SessionTarget, Sleep
from safari_launcher.config import LauncherConfig
from safari_launcher.flavors import SafariFlavor, get_flavor_profile, resolve_command
from safari_launcher.process import ProcessLauncher, SubprocessLauncher
from safari_launcher.session_client import SeleniumSessionClient, SessionClient, SessionHandle

_REDIRECT_TEMPLATE = 'safari.html'
_URL_PLACEHOLDER = '%URL%'
_URL_JSON_PLACEHOLDER = '%URL_JSON%'


def render_redirect_page(template: str, url: str) -> str:
	"""Substitute ``url`` into the redirect template, escaped for HTML and for the inline script."""
	url_json = json.dumps(url).replace('<', '\\u003c').replace('>', '\\u003e').replace('&', '\\u0026')
	return template.replace(_URL_JSON_PLACEHOLDER, url_json).replace(_URL_PLACEHOLDER, html.escape(url, quote=True))


class LauncherStartEvent(BaseEvent[None]):
	url: str


class LauncherKillEvent(BaseEvent[None]):
	pass


class LauncherDependencies(BaseModel):
	"""Collaborators the host hands a launcher at construction time."""

	model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid')

	process_launcher: ProcessLauncher
	session_client: SessionClient | None = None
	logger: logging.Logger | None = None
	config: LauncherConfig = Field(default_factory=LauncherConfig)
	sleep: Sleep = asyncio.sleep


class _SafariLauncherBase(BaseModel):
	model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid', revalidate_instances='never')

	id: str = Field(default_factory=uuid7str)
	flavor: SafariFlavor
	dependencies: LauncherDependencies
	event_bus: EventBus = Field(default_factory=lambda: EventBus(name=f'SafariLauncher_{uuid7str()[-4:]}'))

	_launch_task: asyncio.Task[Any] | None = PrivateAttr(default=None)
	_process_started: bool = PrivateAttr(default=False)

	def model_post_init(self, context: Any, /) -> None:
		del context
		self.event_bus.on(LauncherStartEvent, self.on_LauncherStartEvent)
		self.event_bus.on(LauncherKillEvent, self.on_LauncherKillEvent)

	@property
	def config(self) -> LauncherConfig:
		return self.dependencies.config

	@property
	def command(self) -> str:
		return self.config.command or resolve_command(get_flavor_profile(self.flavor))

	@property
	def name(self) -> str:
		return get_flavor_profile(self.flavor).name

	@property
	def logger(self) -> logging.Logger:
		if self.dependencies.logger is not None:
			return self.dependencies.logger
		return logging.getLogger(f'safari_launcher.{self.flavor.value}🅑 {self.id[-4:]}')

	@property
	def is_launching(self) -> bool:
		return self._launch_task is not None and not self._launch_task.done()

	async def _launch(self, url: str) -> Any:
		raise NotImplementedError

	def on_start(self, url: str) -> asyncio.Task[Any]:
		"""Begin launching towards ``url`` in the background and return the task.

		Must be called from a running event loop. A second call while a launch
		is still in flight returns the in-flight task.
		"""
		if self._launch_task is not None and not self._launch_task.done():
			self.logger.warning(f'{self.name} is already launching, ignoring start for {url}')
			return self._launch_task
		self._launch_task = asyncio.create_task(self._launch(url), name=f'{self.flavor.value}-launch-{self.id[-4:]}')
		return self._launch_task

	def _start_process(self, args: list[str]) -> None:
		self.dependencies.process_launcher.start_process(args)
		self._process_started = True

	async def _stop_process(self) -> None:
		if not self._process_started:
			return
		self._process_started = False
		try:
			await asyncio.to_thread(self.dependencies.process_launcher.terminate)
		except Exception as exc:
			self.logger.warning(f'Failed to stop {self.command}: {exc}')

	def _needs_async_shutdown(self) -> bool:
		return self.is_launching

	async def _cancel_launch(self) -> None:
		task = self._launch_task
		self._launch_task = None
		if task is None or task.done():
			return
		task.cancel()
		with contextlib.suppress(asyncio.CancelledError):
			await task

	async def _teardown(self) -> None:
		return None

	async def kill(self) -> None:
		"""Stop any in-flight launch, close the session, and stop what was started."""
		await self._cancel_launch()
		try:
			await self._teardown()
		finally:
			await self._stop_process()

	async def on_kill(self, done: Callable[[], None]) -> None:
		"""Host kill hook; calls ``done`` exactly once, after teardown has finished.

		With no launch in flight and no session open there is nothing to tear
		down, so ``done`` is called before anything is awaited. A driver process
		this launcher started is stopped afterwards, off the event loop.
		"""
		if not self._needs_async_shutdown():
			done()
			await self._stop_process()
			return
		try:
			await self.kill()
		finally:
			done()

	async def on_LauncherStartEvent(self, event: LauncherStartEvent) -> None:
		self.on_start(event.url)

	async def on_LauncherKillEvent(self, event: LauncherKillEvent) -> None:
		del event
		await self.kill()


class SafariWebDriverLauncher(_SafariLauncherBase):
	"""Launch Safari through safaridriver, starting safaridriver only if it is not already running."""

	flavor: SafariFlavor = SafariFlavor.SAFARI

	_attach: AttachOrLaunch | None = PrivateAttr(default=None)
	_session: SessionHandle | None = PrivateAttr(default=None)

	@property
	def name(self) -> str:
		return f'Safari via WebDriver at {self.config.endpoint.url}'

	@property
	def session_client(self) -> SessionClient:
		client = self.dependencies.session_client
		if client is None:
			raise ValueError(f'{self.flavor.value} needs a session client')
		return client

	@property
	def session(self) -> SessionHandle | None:
		return self._session

	@property
	def attach_loop(self) -> AttachOrLaunch | None:
		return self._attach

	def _start_driver(self) -> None:
		args = self.config.endpoint.command_args()
		self.logger.debug(f'{self.command} is not running.')
		self.logger.debug(f'Attempting to start {self.command} {" ".join(args)}')
		self._start_process(args)

	async def _launch(self, url: str) -> SessionHandle | None:
		self.logger.debug(self.name)
		self.logger.debug(self.config.model_dump_json())

		attach = AttachOrLaunch(
			self.session_client,
			start_driver=self._start_driver,
			retry=self.config.retry,
			sleep=self.dependencies.sleep,
			logger=self.logger,
		)
		self._attach = attach
		try:
			self._session = await attach.run(SessionTarget(target_url=url))
		except LaunchError as exc:
			self.logger.error('Could not connect to Safari.')
			self.logger.error(str(exc))
			return None
		return self._session

	def _needs_async_shutdown(self) -> bool:
		client = self.dependencies.session_client
		return self.is_launching or (client is not None and client.has_session)

	async def _teardown(self) -> None:
		client = self.dependencies.session_client
		self._session = None
		if client is None or not client.has_session:
			return
		try:
			await client.teardown_session()
		except Exception as exc:
			self.logger.warning(f'Failed to quit Safari WebDriver session: {type(exc).__name__}: {exc}')


class SafariLegacyLauncher(_SafariLauncherBase):
	"""Open Safari directly on a redirect page that forwards to the test URL."""

	flavor: SafariFlavor = SafariFlavor.SAFARI_LEGACY

	_temp_dir: str | None = PrivateAttr(default=None)
	_owns_temp_dir: bool = PrivateAttr(default=False)

	def _ensure_temp_dir(self) -> str:
		if self._temp_dir is None:
			if self.config.temp_dir:
				self._temp_dir = self.config.temp_dir
			else:
				self._temp_dir = tempfile.mkdtemp(prefix='safari-launcher-')
				self._owns_temp_dir = True
		return self._temp_dir

	async def write_redirect_page(self, url: str) -> str:
		"""Render the redirect template for ``url`` and return the written file path."""
		template_path = anyio.Path(str(files('safari_launcher').joinpath(_REDIRECT_TEMPLATE)))
		template = await template_path.read_text(encoding='utf-8')
		content = render_redirect_page(template, url)
		redirect_path = anyio.Path(self._ensure_temp_dir()) / 'redirect.html'
		await redirect_path.write_text(content, encoding='utf-8')
		return str(redirect_path)

	async def _launch(self, url: str) -> str:
		redirect_path = await self.write_redirect_page(url)
		self.logger.debug(f'Starting {self.command} {redirect_path}')
		self._start_process([redirect_path])
		return redirect_path

	async def _stop_process(self) -> None:
		await super()._stop_process()
		if self._owns_temp_dir and self._temp_dir is not None:
			temp_dir = self._temp_dir
			self._temp_dir = None
			self._owns_temp_dir = False
			await asyncio.to_thread(shutil.rmtree, temp_dir, ignore_errors=True)


def create_launcher(
	flavor: SafariFlavor | str,
	config: LauncherConfig | None = None,
	*,
	process_launcher: ProcessLauncher | None = None,
	session_client: SessionClient | None = None,
	logger: logging.Logger | None = None,
	sleep: Sleep = asyncio.sleep,
	environ: dict[str, str] | None = None,
	platform: str | None = None,
) -> SafariWebDriverLauncher | SafariLegacyLauncher:
	"""Build a launcher for ``flavor``, filling in default collaborators that were not supplied."""
	flavor = SafariFlavor(flavor)
	profile = get_flavor_profile(flavor)
	config = config or LauncherConfig()
	command = config.command or resolve_command(profile, environ=environ, platform=platform)
	config = config.model_copy(update={'command': command})

	if process_launcher is None:
		process_launcher = SubprocessLauncher(command)

	if not profile.uses_webdriver:
		dependencies = LauncherDependencies(process_launcher=process_launcher, logger=logger, config=config, sleep=sleep)
		return SafariLegacyLauncher(flavor=flavor, dependencies=dependencies)

	if session_client is None:
		session_client = SeleniumSessionClient(config.endpoint)
	dependencies = LauncherDependencies(
		process_launcher=process_launcher,
		session_client=session_client,
		logger=logger,
		config=config,
		sleep=sleep,
	)
	return SafariWebDriverLauncher(flavor=flavor, dependencies=dependencies)


def _plugin_factory(flavor: SafariFlavor) -> Callable[..., SafariWebDriverLauncher | SafariLegacyLauncher]:
	def factory(args: dict[str, Any] | None = None, logger: logging.Logger | None = None) -> Any:
		config = LauncherConfig.from_args((args or {}).get('config'))
		return create_launcher(flavor, config, logger=logger)

	factory.__name__ = f'create_{flavor.value}_launcher'
	return factory


# Registry a test runner host loads launchers from.
PLUGINS: dict[str, Callable[..., SafariWebDriverLauncher | SafariLegacyLauncher]] = {
	'launcher:Safari': _plugin_factory(SafariFlavor.SAFARI),
	'launcher:SafariLegacy': _plugin_factory(SafariFlavor.SAFARI_LEGACY),
	'launcher:SafariTechPreview': _plugin_factory(SafariFlavor.SAFARI_TECH_PREVIEW),
}
