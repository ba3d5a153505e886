#!/usr/bin/env python3

"""
FizzBuzz Server - entrypoint
Runs the public FizzBuzz API and the internal admin server side by side.

This process:
- Reads listener addresses and timeouts from the environment (or a .env file)
- Serves the FizzBuzz API behind logging, metrics and API-key middlewares
- Serves /health and /metrics on a separate admin port
- Shuts both servers down together on SIGINT/SIGTERM or when either fails,
  and force-quits on a second termination signal
"""

import argparse
import asyncio
import logging
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from admin_api import create_admin_app
from constants import ADMIN_SERVER_NAME, API_SERVER_NAME
from exit_codes import ShutdownExitCode, get_exit_code_description
from fizzbuzz_api import create_api_app
from fizzbuzz_service import FizzBuzzService
from lifecycle_coordinator import LifecycleCoordinator
from lifecycle_signal import LifecycleSignal
from metrics import HTTPMetrics
from server_config import InvalidAddressError, ServerConfig, load_environment
from server_handle import ServerHandle
from signal_listener import SignalListener
from system_utils import setup_logging

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Process-scoped state, built once and passed to every component"""

    config: ServerConfig
    lifecycle: LifecycleSignal
    signal_listener: SignalListener
    metrics: HTTPMetrics
    fizzbuzz: FizzBuzzService

    @classmethod
    def create(
        cls, config: ServerConfig, exit_func: Callable[[int], Any] = os._exit
    ) -> "ServiceContext":
        lifecycle = LifecycleSignal()
        return cls(
            config=config,
            lifecycle=lifecycle,
            signal_listener=SignalListener(lifecycle, exit_func=exit_func),
            metrics=HTTPMetrics(),
            fizzbuzz=FizzBuzzService(),
        )


def build_server_handles(context: ServiceContext) -> list[ServerHandle]:
    """Build the admin and API handles, in shutdown order"""
    config = context.config

    # admin and API are separate so consumers never reach health/metrics
    admin_handle = ServerHandle(
        ADMIN_SERVER_NAME,
        create_admin_app(context.metrics, config.timeouts),
        config.host,
        config.admin_port,
        config.timeouts,
    )
    api_handle = ServerHandle(
        API_SERVER_NAME,
        create_api_app(
            context.fizzbuzz, context.metrics, config.api_key, config.timeouts
        ),
        config.host,
        config.api_port,
        config.timeouts,
    )
    return [admin_handle, api_handle]


async def serve(context: ServiceContext) -> ShutdownExitCode:
    """Run both servers until shutdown and return the exit code"""
    coordinator = LifecycleCoordinator(
        context.lifecycle,
        context.signal_listener,
        build_server_handles(context),
        context.config.shutdown_timeout,
    )
    return await coordinator.run()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="FizzBuzz API server")
    parser.add_argument(
        "--env-file", type=Path, default=None, help="Load environment from this file"
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-file", type=Path, default=None, help="Also write detailed logs here"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point"""
    args = parse_args(argv)
    setup_logging(getattr(logging, args.log_level), args.log_file)
    load_environment(args.env_file)

    try:
        config = ServerConfig.from_env()
    except InvalidAddressError as e:
        logger.error(str(e))
        sys.exit(ShutdownExitCode.FAILURE)

    logger.info(
        f"Configuration: api={config.api_address} admin={config.admin_address} "
        f"shutdown_timeout={config.shutdown_timeout}s "
        f"auth={'enabled' if config.api_key else 'disabled'}"
    )

    context = ServiceContext.create(config)
    try:
        exit_code = asyncio.run(serve(context))
    except Exception as e:
        logger.exception(f"Server group failed: {e}")
        sys.exit(ShutdownExitCode.FAILURE)

    logger.info(f"Exit code {int(exit_code)}: {get_exit_code_description(exit_code)}")
    sys.exit(int(exit_code))


if __name__ == "__main__":
    main()
