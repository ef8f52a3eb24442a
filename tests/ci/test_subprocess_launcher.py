"""Tests for SubprocessLauncher process start/stop behavior."""

from __future__ import annotations

import subprocess
from typing import Any

import pytest

from safari_launcher.process import ProcessLauncher, SubprocessLauncher


class _FakePopen:
	instances: list[_FakePopen] = []

	def __init__(self, args: list[str], **kwargs: Any) -> None:
		self.args = args
		self.kwargs = kwargs
		self.pid = 4242 + len(_FakePopen.instances)
		self.returncode: int | None = None
		self.terminated = False
		self.killed = False
		self.hang_on_terminate = False
		_FakePopen.instances.append(self)

	def poll(self) -> int | None:
		return self.returncode

	def terminate(self) -> None:
		self.terminated = True
		if not self.hang_on_terminate:
			self.returncode = -15

	def kill(self) -> None:
		self.killed = True
		self.returncode = -9

	def wait(self, timeout: float | None = None) -> int:
		if self.returncode is None:
			raise subprocess.TimeoutExpired(self.args, timeout or 0)
		return self.returncode


@pytest.fixture
def fake_popen(monkeypatch: pytest.MonkeyPatch) -> type[_FakePopen]:
	_FakePopen.instances = []
	monkeypatch.setattr(subprocess, 'Popen', _FakePopen)
	return _FakePopen


def test_subprocess_launcher_satisfies_protocol() -> None:
	assert isinstance(SubprocessLauncher('/usr/bin/safaridriver'), ProcessLauncher)


def test_start_process_runs_command_with_args(fake_popen: type[_FakePopen]) -> None:
	launcher = SubprocessLauncher('/usr/bin/safaridriver')
	launcher.start_process(['-p', '4444'])

	assert len(fake_popen.instances) == 1
	assert fake_popen.instances[0].args == ['/usr/bin/safaridriver', '-p', '4444']
	assert fake_popen.instances[0].kwargs['stdout'] == subprocess.DEVNULL
	assert launcher.is_running is True


def test_start_process_does_not_spawn_twice_while_running(fake_popen: type[_FakePopen]) -> None:
	launcher = SubprocessLauncher('/usr/bin/safaridriver')
	launcher.start_process(['-p', '4444'])
	launcher.start_process(['-p', '4444'])

	assert len(fake_popen.instances) == 1


def test_terminate_stops_running_process(fake_popen: type[_FakePopen]) -> None:
	launcher = SubprocessLauncher('/usr/bin/safaridriver')
	launcher.start_process([])
	launcher.terminate()

	process = fake_popen.instances[0]
	assert process.terminated is True
	assert process.killed is False
	assert launcher.is_running is False


def test_terminate_kills_process_that_ignores_sigterm(fake_popen: type[_FakePopen]) -> None:
	launcher = SubprocessLauncher('/usr/bin/safaridriver', terminate_timeout=0.01)
	launcher.start_process([])
	fake_popen.instances[0].hang_on_terminate = True
	launcher.terminate()

	assert fake_popen.instances[0].killed is True


def test_terminate_without_process_is_noop() -> None:
	SubprocessLauncher('/usr/bin/safaridriver').terminate()
