"""Launch a Safari flavor at a URL from the command line and keep it open until interrupted."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from pydantic import ValidationError

from safari_launcher.config import LauncherConfig, RetryPolicy, WebDriverEndpoint
from safari_launcher.flavors import SafariFlavor, UnsupportedPlatformError
from safari_launcher.launcher import SafariWebDriverLauncher, create_launcher

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(prog='safari-launcher', description='Open Safari on a test runner URL')
	parser.add_argument('url', help='URL the test runner is serving')
	parser.add_argument(
		'--flavor',
		choices=[flavor.value for flavor in SafariFlavor],
		default=SafariFlavor.SAFARI.value,
		help='Safari variant to launch (default: Safari)',
	)
	parser.add_argument('--hostname', default='127.0.0.1', help='safaridriver host')
	parser.add_argument('--port', type=int, default=4444, help='safaridriver port')
	parser.add_argument('--command', default=None, help='Override the safaridriver/Safari binary')
	parser.add_argument('--max-attempts', type=int, default=10, help='Connection attempts before giving up')
	parser.add_argument('--retry-interval', type=float, default=0.5, help='Seconds between connection attempts')
	parser.add_argument('-v', '--verbose', action='store_true', help='Log WebDriver traffic')
	return parser


def config_from_args(args: argparse.Namespace) -> LauncherConfig:
	return LauncherConfig(
		endpoint=WebDriverEndpoint(hostname=args.hostname, port=args.port),
		retry=RetryPolicy(max_attempts=args.max_attempts, interval_seconds=args.retry_interval),
		command=args.command,
	)


async def run(args: argparse.Namespace) -> int:
	launcher = create_launcher(args.flavor, config_from_args(args))
	try:
		result = await launcher.on_start(args.url)
		if isinstance(launcher, SafariWebDriverLauncher) and result is None:
			return 1
		logger.info(f'{launcher.name} opened {args.url}; press Ctrl-C to close it')
		await asyncio.Event().wait()
		return 0
	finally:
		await launcher.kill()
		await launcher.event_bus.stop(clear=True, timeout=5)


def main(argv: list[str] | None = None) -> int:
	args = build_parser().parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.INFO,
		format='%(levelname)-8s [%(name)s] %(message)s',
	)
	try:
		return asyncio.run(run(args))
	except KeyboardInterrupt:
		return 130
	except (UnsupportedPlatformError, ValidationError) as exc:
		print(f'safari-launcher: {exc}', file=sys.stderr)
		return 2
