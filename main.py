#!/usr/bin/env python3
"""
dep-cache - cache package manager installs by manifest fingerprint

Usage:
    dep-cache install [--force-refresh] [<manager> [<install options>...] ...]
    dep-cache clean
    dep-cache serve <port> --storage-dir=<DIR> [--is_public] [--api-keys=<KEY1>,<KEY2>,...]

Examples:
    dep-cache install                          # install npm, bower and composer components
    dep-cache install bower                    # install only bower components
    dep-cache install bower npm                # install bower and npm components
    dep-cache install bower --allow-root composer --dry-run
                                               # bower with --allow-root, composer with --dry-run
    dep-cache -c /home/cache/ install bower    # use /home/cache as cache directory
    dep-cache install --force-refresh bower    # install from the package manager, ignoring the cache
    dep-cache clean                            # delete all cached archives in the cache directory
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional

import uvicorn

from application.install_all import MultiManagerCoordinator, build_orchestrators
from domain.backends import BackendRegistry, default_registry
from domain.errors import SettingsError
from infrastructure.file_system_cache_repository import FileSystemCacheRepository
from infrastructure.progress_reporter import ProgressReporter
from infrastructure.settings import load_remote_settings
from interfaces.api import initialize_app

logger = logging.getLogger("dep_cache")


def default_cache_directory() -> str:
    if os.environ.get("DEP_CACHE_DIR"):
        return os.environ["DEP_CACHE_DIR"]
    return str(Path.home() / ".package_cache")


def parse_manager_args(tokens: List[str], known_managers: List[str]) -> Dict[str, str]:
    """
    Split 'bower --allow-root composer --dry-run' into per-manager options.

    Tokens following a manager name, up to the next manager name, are that
    manager's install options. No manager named means every known manager.
    """
    managers: Dict[str, List[str]] = {}
    current: Optional[str] = None
    for token in tokens:
        if token in known_managers:
            current = token
            managers.setdefault(current, [])
        elif current is None:
            raise ValueError(f"Unknown manager '{token}'. Available: {', '.join(known_managers)}")
        else:
            managers[current].append(token)

    if not managers:
        managers = {name: [] for name in known_managers}
    return {name: " ".join(options) for name, options in managers.items()}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='dep-cache',
        description='Cache package manager installs by manifest fingerprint',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('-c', '--cache-directory', default=default_cache_directory(),
                        help='directory where dependencies will be cached')
    parser.add_argument('-q', '--quiet', action='store_true', help='only log warnings and errors')

    subparsers = parser.add_subparsers(dest='command', required=True)

    install = subparsers.add_parser('install', help='install specified dependencies')
    install.add_argument('-r', '--force-refresh', action='store_true',
                         help='force installing dependencies from package manager without cache')
    install.add_argument('managers', nargs=argparse.REMAINDER,
                         help='managers to install, each followed by its install options')

    subparsers.add_parser('clean', help='clear cache directory')

    serve = subparsers.add_parser('serve', help='run the remote object store server')
    serve.add_argument('port', type=int, help='Port to listen on')
    serve.add_argument('--storage-dir', required=True, help='Directory to store objects')
    serve.add_argument('--is_public', action='store_true', help='Run server without authentication')
    serve.add_argument('--api-keys', help='Comma-separated list of API keys for authentication')
    serve.add_argument('--host', default='0.0.0.0', help='Host to bind to (default: 0.0.0.0)')
    return parser


def install_dependencies(args, registry: BackendRegistry, working_directory: Path) -> int:
    try:
        manager_options = parse_manager_args(args.managers, registry.names())
        remote = load_remote_settings(working_directory)
    except (ValueError, SettingsError) as e:
        logger.error("%s", e)
        return 1

    cache_repository = FileSystemCacheRepository(Path(args.cache_directory))
    cache_repository.prepare()

    configs = [
        registry.create_config(name, working_directory, options, remote)
        for name, options in manager_options.items()
    ]
    orchestrators = build_orchestrators(
        configs,
        Path(args.cache_directory),
        force_refresh=args.force_refresh,
        progress=ProgressReporter(enabled=sys.stderr.isatty()),
    )
    report = asyncio.run(MultiManagerCoordinator(orchestrators).run())
    return report.exit_code


def clean_cache(args) -> int:
    cache_repository = FileSystemCacheRepository(Path(args.cache_directory))
    cache_repository.prepare()
    removed = cache_repository.clean()
    logger.info("cleaned %d files from cache directory", removed)
    return 0


def serve(args) -> int:
    api_keys = None
    if args.api_keys:
        api_keys = [key.strip() for key in args.api_keys.split(',') if key.strip()]

    if not args.is_public and not api_keys:
        logger.error("Either --is_public must be set or --api-keys must be provided")
        return 1

    app = initialize_app(storage_dir=args.storage_dir, is_public=args.is_public, api_keys=api_keys)

    logger.info("Starting object store on %s:%s", args.host, args.port)
    logger.info("Storage directory: %s", args.storage_dir)
    logger.info("Public mode: %s", args.is_public)

    uvicorn.run(app, host=args.host, port=args.port)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.WARNING if args.quiet else logging.INFO,
        format='[dep-cache] %(levelname)s %(message)s',
    )

    if args.command == 'install':
        return install_dependencies(args, default_registry(), Path.cwd())
    if args.command == 'clean':
        return clean_cache(args)
    return serve(args)


if __name__ == '__main__':
    sys.exit(main())
