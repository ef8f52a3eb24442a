"""Unit tests for SeleniumSessionClient's async wrapper around selenium Remote."""

from __future__ import annotations

import errno
from typing import Any

import pytest
from selenium import webdriver

from safari_launcher.config import WebDriverEndpoint
from safari_launcher.session_client import SeleniumSessionClient, SessionClient, SessionNotStartedError, is_connection_refused


class _FakeRemote:
	instances: list[_FakeRemote] = []

	def __init__(self, command_executor: str, options: Any) -> None:
		self.command_executor = command_executor
		self.options = options
		self.session_id = f'session-{len(_FakeRemote.instances) + 1}'
		self.capabilities = {'browserName': 'Safari', 'browserVersion': '17.4'}
		self.visited: list[str] = []
		self.quit_calls = 0
		_FakeRemote.instances.append(self)

	def get(self, url: str) -> None:
		self.visited.append(url)

	def quit(self) -> None:
		self.quit_calls += 1


@pytest.fixture
def fake_remote(monkeypatch: pytest.MonkeyPatch) -> type[_FakeRemote]:
	_FakeRemote.instances = []
	monkeypatch.setattr(webdriver, 'Remote', _FakeRemote)
	return _FakeRemote


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> SeleniumSessionClient:
	session_client = SeleniumSessionClient(WebDriverEndpoint(port=5555))

	async def fake_run_sync(operation, timeout: float | None = None):  # type: ignore[no-untyped-def]
		del timeout
		return operation()

	monkeypatch.setattr(session_client, '_run_sync', fake_run_sync)
	return session_client


def test_client_satisfies_session_protocol() -> None:
	assert isinstance(SeleniumSessionClient(), SessionClient)


@pytest.mark.asyncio
async def test_initialize_session_connects_to_endpoint(client: SeleniumSessionClient, fake_remote: type[_FakeRemote]) -> None:
	handle = await client.initialize_session({'browserName': 'safari', 'allowW3C': True, 'safari:automaticInspection': False})

	assert handle.session_id == 'session-1'
	assert handle.capabilities['browserName'] == 'Safari'
	assert client.has_session is True

	remote = fake_remote.instances[0]
	assert remote.command_executor == 'http://127.0.0.1:5555/'
	capabilities = remote.options.to_capabilities()
	assert capabilities['browserName'] == 'safari'
	assert capabilities['safari:automaticInspection'] is False
	assert 'allowW3C' not in capabilities


@pytest.mark.asyncio
async def test_initialize_session_reuses_open_session(client: SeleniumSessionClient, fake_remote: type[_FakeRemote]) -> None:
	first = await client.initialize_session({'browserName': 'safari'})
	second = await client.initialize_session({'browserName': 'safari'})

	assert first == second
	assert len(fake_remote.instances) == 1


@pytest.mark.asyncio
async def test_initialize_session_propagates_refused_connection(
	client: SeleniumSessionClient, monkeypatch: pytest.MonkeyPatch
) -> None:
	def refusing_remote(command_executor: str, options: Any) -> Any:
		del command_executor, options
		raise ConnectionRefusedError(errno.ECONNREFUSED, 'Connection refused')

	monkeypatch.setattr(webdriver, 'Remote', refusing_remote)

	with pytest.raises(ConnectionRefusedError) as exc_info:
		await client.initialize_session({'browserName': 'safari'})

	assert is_connection_refused(exc_info.value) is True
	assert client.has_session is False


@pytest.mark.asyncio
async def test_navigate_requires_session(client: SeleniumSessionClient) -> None:
	with pytest.raises(SessionNotStartedError):
		await client.navigate_to('http://localhost:9876/')


@pytest.mark.asyncio
async def test_navigate_and_teardown(client: SeleniumSessionClient, fake_remote: type[_FakeRemote]) -> None:
	await client.initialize_session({'browserName': 'safari'})
	await client.navigate_to('http://localhost:9876/')

	remote = fake_remote.instances[0]
	assert remote.visited == ['http://localhost:9876/']

	await client.teardown_session()
	assert remote.quit_calls == 1
	assert client.has_session is False

	await client.teardown_session()
	assert remote.quit_calls == 1
