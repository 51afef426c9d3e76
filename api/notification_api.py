"""
Notification Webhook API.

Provides the endpoint the payment provider posts notification batches to.
"""

import logging
from typing import Optional

from aiohttp import web

from config import config
from services.authorization import AuthorizationValidator
from services.dispatcher import NotificationDispatcher
from services.exceptions import AuthorizationError, InvalidPayloadError
from services.hooks import NotificationHooks
from services.notification_handler import NotificationHandler
from services.notification_repository import NotificationRepository
from services.parser import NotificationParser
from .responses import ResponseBuilder

logger = logging.getLogger(__name__)


class NotificationAPI:
    """
    REST API for provider notifications.

    Endpoints:
    - POST /notification/adyen - Receive a notification batch
    - GET /api/health - Health check
    """

    def __init__(
        self,
        validator: AuthorizationValidator,
        repository: NotificationRepository,
        dispatcher: NotificationDispatcher,
        hooks: Optional[NotificationHooks] = None,
        concurrency: Optional[int] = None
    ):
        """
        Initialize the API.

        Args:
            validator: Authorization validator
            repository: Notification repository
            dispatcher: Notification dispatcher
            hooks: Optional receive/processed hooks
            concurrency: Orders processed concurrently per batch
        """
        self.validator = validator
        self.repository = repository
        self.dispatcher = dispatcher
        self.hooks = hooks or NotificationHooks()
        self.concurrency = concurrency or config.notification.concurrency

    def setup_routes(self, app: web.Application, notification_path: Optional[str] = None) -> None:
        """
        Set up API routes.

        Args:
            app: aiohttp web application
            notification_path: Path of the notification endpoint
        """
        app.router.add_post(notification_path or config.api.notification_path, self.receive_notifications)
        app.router.add_get('/api/health', self.health_check)

    def create_handler(self) -> NotificationHandler:
        """Build the handler for one request."""
        return NotificationHandler(
            parser=NotificationParser(),
            validator=self.validator,
            repository=self.repository,
            dispatcher=self.dispatcher,
            hooks=self.hooks,
            concurrency=self.concurrency
        )

    async def receive_notifications(self, request: web.Request) -> web.Response:
        """
        Receive a notification batch.

        Request body:
        {
            "live": "false",
            "notificationItems": [
                {"NotificationRequestItem": {"eventCode": "AUTHORISATION", "pspReference": "...", ...}}
            ]
        }

        Responds 200 "[accepted]" whenever the batch parsed and authenticated,
        whatever happened to individual items.
        """
        handler = self.create_handler()
        raw_body = await request.read()

        try:
            items = await handler.receive(raw_body, request.headers.get('Authorization'))
        except AuthorizationError as e:
            logger.warning(f"Notification rejected from {request.remote}: {e}")
            return ResponseBuilder.unauthorized(str(e), e.status)
        except InvalidPayloadError as e:
            logger.warning(f"Invalid notification payload from {request.remote}: {e}")
            return ResponseBuilder.bad_request(str(e))
        except Exception as e:
            logger.error(f"Error receiving notification batch: {e}", exc_info=True)
            return ResponseBuilder.bad_request(str(e))

        try:
            await handler.process(items)
        except Exception as e:
            logger.error(f"Unexpected error processing notification batch: {e}", exc_info=True)

        # On valid credentials, always acknowledge
        return ResponseBuilder.accepted()

    async def health_check(self, request: web.Request) -> web.Response:
        """Health check endpoint."""
        return web.json_response({
            "status": "healthy",
            "service": config.service.name
        })


def create_app(
    validator: AuthorizationValidator,
    repository: NotificationRepository,
    dispatcher: NotificationDispatcher,
    hooks: Optional[NotificationHooks] = None,
    concurrency: Optional[int] = None,
    notification_path: Optional[str] = None
) -> web.Application:
    """
    Create and configure the aiohttp web application.

    Args:
        validator: Authorization validator
        repository: Notification repository
        dispatcher: Notification dispatcher
        hooks: Optional receive/processed hooks
        concurrency: Orders processed concurrently per batch
        notification_path: Path of the notification endpoint

    Returns:
        Configured aiohttp Application
    """
    app = web.Application()

    # Create API handler
    api = NotificationAPI(
        validator=validator,
        repository=repository,
        dispatcher=dispatcher,
        hooks=hooks,
        concurrency=concurrency
    )

    # Setup routes
    api.setup_routes(app, notification_path)

    # Error handling middleware
    @web.middleware
    async def error_middleware(request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            return web.json_response(
                {"message": "Internal server error"},
                status=500
            )

    app.middlewares.append(error_middleware)

    return app
