#!/usr/bin/env python3
"""
Environment Configuration Manager

This module resolves the project layout that configuration is loaded from,
detects the active environment name and reports environment information for
diagnostics. It also provides the ``confstack`` command line.

Layout under the project root:

    .env, .env.<environment>, .env.local
    config/*.yaml|*.yml|*.json
    config/environments/<environment>/
    config/local/
    storage/cache/config.cache
"""

import os
import sys
import platform
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence
from dataclasses import dataclass, asdict

import psutil
import yaml
from dotenv import find_dotenv

from .env_loader import to_environ_string
from .exceptions import ConfigError
from ..utils.logger import setup_logging

DEFAULT_ENVIRONMENT = 'production'
ENVIRONMENT_VARIABLE = 'APP_ENV'
ENV_ARGUMENT = '--env='


@dataclass
class EnvironmentInfo:
    """Information about the current environment."""
    environment: str
    project_root: str
    machine_id: str
    python_version: str
    total_memory_gb: float
    cpu_count: int
    platform: str
    architecture: str


def detect_environment(
    argv: Optional[Sequence[str]] = None,
    env_lookup: Optional[Callable[..., Any]] = None,
    explicit: Optional[str] = None,
) -> str:
    """
    Determine the active environment name.

    Order: ``explicit``, a ``--env=<name>`` argument, ``APP_ENV``, then
    ``production``.

    Args:
        argv: Command-line arguments (``sys.argv[1:]`` if None)
        env_lookup: Variable lookup ``(name, default)`` (``os.environ.get`` if None)
        explicit: Environment name chosen by the caller
    """
    if explicit:
        return explicit

    args = sys.argv[1:] if argv is None else argv
    for arg in args:
        if arg.startswith(ENV_ARGUMENT) and len(arg) > len(ENV_ARGUMENT):
            return arg[len(ENV_ARGUMENT):]

    lookup = env_lookup or os.environ.get
    value = lookup(ENVIRONMENT_VARIABLE, None)
    if value is not None and value != '':
        return str(value)

    return DEFAULT_ENVIRONMENT


class EnvironmentManager:
    """Resolves configuration locations for a project root."""

    def __init__(self, project_root: Optional[Path] = None):
        """Initialize the environment manager."""
        if project_root is None:
            project_root = self._discover_project_root()

        self.project_root = Path(project_root)
        self.config_dir = self.project_root / 'config'
        self.environments_dir = self.config_dir / 'environments'
        self.local_dir = self.config_dir / 'local'
        self.storage_dir = self.project_root / 'storage'

    @staticmethod
    def _discover_project_root() -> Path:
        """Directory of the nearest ``.env`` above the working directory, else the cwd."""
        dotenv_path = find_dotenv(usecwd=True)
        if dotenv_path:
            return Path(dotenv_path).resolve().parent
        return Path.cwd()

    # ------------------------------------------------------------------
    @property
    def base_env_file(self) -> Path:
        return self.project_root / '.env'

    @property
    def local_env_file(self) -> Path:
        return self.project_root / '.env.local'

    def environment_env_file(self, environment: str) -> Path:
        return self.project_root / f'.env.{environment}'

    def env_files(self, environment: str) -> List[Path]:
        """Environment files in load order."""
        return [
            self.base_env_file,
            self.environment_env_file(environment),
            self.local_env_file,
        ]

    def environment_dir(self, environment: str) -> Path:
        return self.environments_dir / environment

    def detect_environment(
        self,
        argv: Optional[Sequence[str]] = None,
        env_lookup: Optional[Callable[..., Any]] = None,
        explicit: Optional[str] = None,
    ) -> str:
        return detect_environment(argv=argv, env_lookup=env_lookup, explicit=explicit)

    # ------------------------------------------------------------------
    def get_environment_info(self, environment: Optional[str] = None) -> EnvironmentInfo:
        """Collect information about the current environment."""
        return EnvironmentInfo(
            environment=environment or self.detect_environment(),
            project_root=str(self.project_root),
            machine_id=platform.node(),
            python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
            total_memory_gb=psutil.virtual_memory().total / (1024**3),
            cpu_count=psutil.cpu_count() or 0,
            platform=platform.system(),
            architecture=platform.architecture()[0]
        )

    def create_environment_report(self, manager=None) -> Dict[str, Any]:
        """Create an environment report, including the resolver summary when given."""
        environment = manager.environment if manager is not None else None
        report: Dict[str, Any] = {
            'environment_info': asdict(self.get_environment_info(environment)),
            'layout': {
                'config_dir': self.config_dir.is_dir(),
                'environments_dir': self.environments_dir.is_dir(),
                'local_dir': self.local_dir.is_dir(),
                'storage_dir': self.storage_dir.is_dir(),
            },
        }
        if manager is not None:
            report['configuration'] = manager.get_summary()
        return report

    def print_environment_status(self, manager=None):
        """Print current environment status."""
        report = self.create_environment_report(manager)
        info = report['environment_info']

        print("\n=== Environment Status ===")
        print(f"Environment: {info['environment']}")
        print(f"Project Root: {info['project_root']}")
        print(f"Machine ID: {info['machine_id']}")
        print(f"Python Version: {info['python_version']}")
        print(f"Memory: {info['total_memory_gb']:.1f} GB")
        print(f"CPU Cores: {info['cpu_count']}")
        print(f"Platform: {info['platform']} ({info['architecture']})")

        print("\n=== Layout ===")
        for name, present in report['layout'].items():
            print(f"{name}: {'present' if present else 'missing'}")

        summary = report.get('configuration')
        if summary:
            print("\n=== Configuration Status ===")
            print(f"State: {summary['state']}")
            print(f"Loaded From: {summary['loaded_from']}")
            print(f"Groups: {', '.join(summary['groups']) or '(none)'}")
            print(f"Sources: {len(summary['sources'])}")
            for source in summary['sources']:
                print(f"  - {source}")

            cache = summary.get('cache')
            print("\n=== Cache ===")
            if cache is None:
                print("Cache disabled")
            else:
                print(f"Path: {cache['path']}")
                print(f"Exists: {cache['exists']}")
                print(f"Valid: {cache['valid']}")
                print(f"Size: {cache['size']} bytes")


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main function for command-line usage."""
    import argparse

    from .hierarchical_config import ConfigurationManager

    parser = argparse.ArgumentParser(description='Layered configuration manager')
    parser.add_argument('--root', help='Project root (default: directory of the nearest .env)')
    parser.add_argument('--env', help='Active environment (default: APP_ENV or production)')
    parser.add_argument('--no-cache', action='store_true', help='Ignore the configuration cache')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('status', help='Show environment and configuration status')
    get_parser = subparsers.add_parser('get', help='Print a configuration value')
    get_parser.add_argument('path', help='Dot-delimited configuration path')
    env_parser = subparsers.add_parser('env', help='Print an environment variable')
    env_parser.add_argument('key', help='Environment variable name')
    subparsers.add_parser('cache', help='Rebuild the configuration cache')
    subparsers.add_parser('clear', help='Delete the configuration cache')

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(log_level='DEBUG' if args.verbose else 'WARNING')

    environment = EnvironmentManager(args.root)
    manager = ConfigurationManager(
        base_path=environment.project_root,
        environment=args.env,
        use_cache=not args.no_cache,
        argv=[],
    )

    try:
        if args.command == 'status':
            manager.load()
            environment.print_environment_status(manager)

        elif args.command == 'get':
            value = manager.get_required(args.path)
            print(yaml.safe_dump({args.path: value}, default_flow_style=False, sort_keys=False), end='')

        elif args.command == 'env':
            manager.load()
            value = manager.env(args.key)
            if value is None and not manager.env_loader.has(args.key):
                print(f"Environment variable {args.key} is not defined", file=sys.stderr)
                return 1
            print(f"{args.key}={to_environ_string(value)}")

        elif args.command == 'cache':
            manager.rebuild_cache()
            print(f"Configuration cache written to {manager.cache.cache_file_path}")

        elif args.command == 'clear':
            manager.cache.clear()
            print("Configuration cache cleared")

    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
