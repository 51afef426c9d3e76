#!/usr/bin/env python3
"""
Payment Notification Service.

Main entry point that wires the notification pipeline together:
- Database connection and schema
- Credential store and authorization validator
- Notification repository, processors and dispatcher
- Order service client
- Notification webhook API

Usage:
    python main.py

Environment variables:
    See config.py for all configuration options.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from aiohttp import web

from config import config
from database.db import Database
from services.authorization import AuthorizationValidator
from services.credential_store import CredentialStore, default_credentials
from services.dispatcher import NotificationDispatcher, ProcessorRegistry
from services.hooks import IgnoreEventCodesHook, NotificationHooks
from services.notification_repository import NotificationRepository
from services.order_client import OrderServiceClient
from services.processors import default_processors
from api.notification_api import create_app


# Configure logging
def setup_logging():
    """Configure logging based on config."""
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_level = getattr(logging, config.logging.level.upper(), logging.INFO)

    handlers = [logging.StreamHandler(sys.stdout)]

    if config.logging.file:
        # Ensure log directory exists
        log_dir = os.path.dirname(config.logging.file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(config.logging.file))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers
    )

    # Reduce noise from third-party libraries
    logging.getLogger('aiohttp').setLevel(logging.WARNING)
    logging.getLogger('asyncio').setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


class PaymentNotificationService:
    """
    Main service orchestrator.

    Owns the long-lived components; everything request-scoped is built
    per request by the API.
    """

    def __init__(self):
        self.db: Optional[Database] = None
        self.order_client: Optional[OrderServiceClient] = None
        self.api_app: Optional[web.Application] = None
        self.api_runner: Optional[web.AppRunner] = None
        self._shutdown_event = asyncio.Event()

    async def start(self) -> None:
        """Start all services."""
        logger.info("=" * 60)
        logger.info(f"Starting {config.service.name}")
        logger.info("=" * 60)

        # Validate configuration
        errors = config.validate()
        if errors:
            for error in errors:
                logger.error(f"Configuration error: {error}")
            raise ValueError("Invalid configuration")

        # Initialize database
        logger.info("Initializing database...")
        self.db = Database()
        await self.db.connect()
        await self.db.init_schema()

        # Initialize services
        logger.info("Initializing services...")

        self.order_client = OrderServiceClient()
        await self.order_client.start()

        credentials = default_credentials()
        if credentials is None:
            logger.warning("No default notification credentials configured, relying on merchant_credentials table")
        validator = AuthorizationValidator(CredentialStore(db=self.db, default=credentials))

        repository = NotificationRepository(self.db)
        registry = ProcessorRegistry(default_processors(self.order_client))
        dispatcher = NotificationDispatcher(repository, registry)

        hooks = NotificationHooks()
        if config.notification.ignored_events:
            hooks.add_receive_hook(IgnoreEventCodesHook(config.notification.ignored_events))

        # Start API server
        logger.info("Starting API server...")
        self.api_app = create_app(
            validator=validator,
            repository=repository,
            dispatcher=dispatcher,
            hooks=hooks
        )

        self.api_runner = web.AppRunner(self.api_app)
        await self.api_runner.setup()

        site = web.TCPSite(
            self.api_runner,
            config.api.host,
            config.api.port
        )
        await site.start()

        logger.info("=" * 60)
        logger.info("Service started successfully!")
        logger.info(
            f"Notifications accepted at http://{config.api.host}:{config.api.port}"
            f"{config.api.notification_path}"
        )
        logger.info(f"Processors: {len(registry)} registered")
        logger.info("=" * 60)

    async def stop(self) -> None:
        """Stop all services gracefully."""
        logger.info("Initiating graceful shutdown...")

        # Stop accepting new requests
        if self.api_runner:
            try:
                await asyncio.wait_for(
                    self.api_runner.cleanup(),
                    timeout=config.service.shutdown_timeout
                )
            except asyncio.TimeoutError:
                logger.warning("API server did not shut down in time")

        if self.order_client:
            await self.order_client.stop()

        # Close database
        if self.db:
            await self.db.disconnect()

        logger.info("Shutdown complete")
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run the service until shutdown signal."""
        await self.start()

        # Wait for shutdown signal
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        """Request service shutdown."""
        asyncio.create_task(self.stop())


def handle_signal(service: PaymentNotificationService, sig: signal.Signals) -> None:
    """Handle shutdown signals."""
    logger.info(f"Received signal {sig.name}, initiating shutdown...")
    service.request_shutdown()


async def main() -> None:
    """Main entry point."""
    setup_logging()

    service = PaymentNotificationService()

    # Set up signal handlers
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda s=sig: handle_signal(service, s)
        )

    try:
        await service.run()
    except Exception as e:
        logger.error(f"Service error: {e}", exc_info=True)
        await service.stop()
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == '__main__':
    run()
