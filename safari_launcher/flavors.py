"""Safari flavors a host can ask for, and how to find each one's binary."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from enum import Enum

from pydantic import BaseModel, ConfigDict


class SafariFlavor(str, Enum):
	SAFARI = 'Safari'
	SAFARI_TECH_PREVIEW = 'SafariTechPreview'
	SAFARI_LEGACY = 'SafariLegacy'


class FlavorProfile(BaseModel):
	"""Static description of one Safari flavor."""

	model_config = ConfigDict(extra='forbid', frozen=True)

	name: str
	default_cmd: dict[str, str]
	env_cmd: str
	uses_webdriver: bool = True
	# Relative to %ProgramFiles(x86)%, which is only known at resolve time.
	program_files_cmd: str | None = None


class UnsupportedPlatformError(RuntimeError):
	"""Raised when no binary is known for a flavor on the current platform."""


_PROFILES: dict[SafariFlavor, FlavorProfile] = {
	SafariFlavor.SAFARI: FlavorProfile(
		name='Safari',
		default_cmd={'darwin': '/usr/bin/safaridriver'},
		env_cmd='SAFARI_BIN',
	),
	SafariFlavor.SAFARI_TECH_PREVIEW: FlavorProfile(
		name='SafariTechPreview',
		default_cmd={'darwin': '/Applications/Safari Technology Preview.app/Contents/MacOS/safaridriver'},
		env_cmd='SAFARI_TECHPREVIEW_BIN',
	),
	SafariFlavor.SAFARI_LEGACY: FlavorProfile(
		name='Safari',
		default_cmd={'darwin': '/Applications/Safari.app/Contents/MacOS/Safari'},
		env_cmd='SAFARI_BIN',
		program_files_cmd=r'\Safari\Safari.exe',
		uses_webdriver=False,
	),
}


def get_flavor_profile(flavor: SafariFlavor | str) -> FlavorProfile:
	return _PROFILES[SafariFlavor(flavor)]


def resolve_command(
	profile: FlavorProfile,
	environ: Mapping[str, str] | None = None,
	platform: str | None = None,
) -> str:
	"""Return the binary to run: the flavor's env var first, then the platform default."""
	env = os.environ if environ is None else environ
	platform = platform or sys.platform

	override = env.get(profile.env_cmd)
	if override:
		return override

	if platform == 'win32' and profile.program_files_cmd:
		return env.get('ProgramFiles(x86)', r'C:\Program Files (x86)') + profile.program_files_cmd

	command = profile.default_cmd.get(platform)
	if command is None:
		raise UnsupportedPlatformError(
			f'No {profile.name} binary known for platform {platform!r}. Set ${profile.env_cmd} to the binary path.'
		)
	return command
