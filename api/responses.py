"""
Notification acknowledgment responses.

The provider redelivers whole batches unless it sees the accepted
acknowledgment, so only malformed payloads and bad credentials produce
anything other than ``accepted()``.
"""

from aiohttp import web

ACCEPTED_MESSAGE = '[accepted]'


class ResponseBuilder:
    """Builds the JSON responses returned to the provider."""

    @staticmethod
    def accepted() -> web.Response:
        return web.json_response({"message": ACCEPTED_MESSAGE}, status=200)

    @staticmethod
    def bad_request(message: str) -> web.Response:
        return web.json_response({"message": message}, status=400)

    @staticmethod
    def unauthorized(message: str, status: int = 401) -> web.Response:
        """401 for wrong credentials, 403 for accounts with none configured."""
        if status not in (401, 403):
            status = 401
        return web.json_response({"message": message}, status=status)
