"""Request body cap middleware.

Submissions are capped at a fixed size before any parsing. Unlike a
413-style limit, overflow is not an error: bytes past the cap are
dropped and the application sees a body of exactly ``max_body_size``
bytes.
"""

from starlette.types import ASGIApp, Message, Receive, Scope, Send


class TruncatingStream:
    """Wraps an ASGI receive callable and drops body bytes past the cap.

    Counts bytes as they are read, so chunked transfer encoding is
    capped the same way as bodies with a Content-Length.
    """

    def __init__(self, receive: Receive, max_size: int):
        """Initialize the stream.

        Args:
            receive: The ASGI receive callable
            max_size: Maximum number of body bytes passed through
        """
        self._receive = receive
        self._max_size = max_size
        self._bytes_read = 0
        self._body_complete = False
        self._draining = False

    async def receive(self) -> Message:
        if self._body_complete:
            message = await self._receive()
            # Discard the rest of an oversized body; disconnects still pass.
            while self._draining and message["type"] == "http.request":
                self._draining = message.get("more_body", False)
                message = await self._receive()
            return message

        message = await self._receive()

        if message["type"] != "http.request":
            return message

        body = message.get("body", b"")
        more_body = message.get("more_body", False)
        remaining = self._max_size - self._bytes_read
        self._bytes_read += len(body)

        if len(body) >= remaining and (more_body or len(body) > remaining):
            self._body_complete = True
            self._draining = more_body
            return {"type": "http.request", "body": body[:remaining], "more_body": False}

        if not more_body:
            self._body_complete = True
        return message


class RequestSizeLimitMiddleware:
    """ASGI middleware capping request bodies at ``max_body_size`` bytes.

    This is raw ASGI middleware so that the receive callable is wrapped
    before Starlette's Request is constructed.

    Usage:
        app.add_middleware(RequestSizeLimitMiddleware, max_body_size=256 * 1024)
    """

    def __init__(self, app: ASGIApp, max_body_size: int = 256 * 1024):
        self.app = app
        self.max_body_size = max_body_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        stream = TruncatingStream(receive, self.max_body_size)
        await self.app(scope, stream.receive, send)
