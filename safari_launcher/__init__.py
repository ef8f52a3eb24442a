"""Safari launchers for browser-based test runners."""

from .attach import AttachOrLaunch, AttachState, DriverError, LaunchError, LaunchTimeoutError, SessionTarget
from .config import LauncherConfig, RetryPolicy, WebDriverEndpoint
from .flavors import SafariFlavor
from .launcher import (
	PLUGINS,
	LauncherDependencies,
	LauncherKillEvent,
	LauncherStartEvent,
	SafariLegacyLauncher,
	SafariWebDriverLauncher,
	create_launcher,
)
from .session_client import SeleniumSessionClient, SessionHandle

__all__ = [
	'PLUGINS',
	'AttachOrLaunch',
	'AttachState',
	'DriverError',
	'LaunchError',
	'LaunchTimeoutError',
	'LauncherConfig',
	'LauncherDependencies',
	'LauncherKillEvent',
	'LauncherStartEvent',
	'RetryPolicy',
	'SafariFlavor',
	'SafariLegacyLauncher',
	'SafariWebDriverLauncher',
	'SeleniumSessionClient',
	'SessionHandle',
	'SessionTarget',
	'WebDriverEndpoint',
	'create_launcher',
]
