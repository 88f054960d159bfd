"""Telegram bot webhook, used to discover recipient chat IDs.

Anyone who messages the bot with ``/myid`` gets their chat ID written
to the log, from where an operator copies it into TELEGRAM_CHAT_IDS.
"""

import json
import secrets

import httpx
from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from intake.app.core.config import Settings
from intake.app.core.logging import get_logger
from intake.app.exceptions import ConfigError

logger = get_logger(__name__)
router = APIRouter()

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"


@router.api_route(
    "/telegram/webhook",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
async def telegram_webhook(request: Request) -> Response:
    """Receive a bot update and log the chat ID for ``/myid``."""
    if request.method != "POST":
        return PlainTextResponse("method not allowed", status_code=405)

    config: Settings = request.app.state.settings
    if config.telegram_webhook_secret:
        supplied = request.headers.get(SECRET_HEADER, "")
        if not secrets.compare_digest(supplied, config.telegram_webhook_secret):
            return PlainTextResponse("unauthorized", status_code=401)

    body = (await request.body())[:config.max_body_size]
    try:
        update = json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return PlainTextResponse("bad request", status_code=400)
    if not isinstance(update, dict):
        return PlainTextResponse("bad request", status_code=400)

    message = update.get("message")
    if isinstance(message, dict):
        text = str(message.get("text") or "").strip()
        chat = message.get("chat") or {}
        if text.startswith("/myid") and isinstance(chat, dict):
            logger.info(f"telegram chat id: {chat.get('id')}")

    return Response(status_code=200)


async def register_webhook(config: Settings, client: httpx.AsyncClient) -> None:
    """Point the bot's webhook at this service.

    Raises:
        ConfigError: If Telegram rejects the registration
    """
    payload = {"url": config.telegram_webhook_url}
    if config.telegram_webhook_secret:
        payload["secret_token"] = config.telegram_webhook_secret

    url = f"{config.telegram_api_base_url.rstrip('/')}/bot{config.telegram_bot_token}/setWebhook"
    try:
        response = await client.post(url, json=payload)
    except httpx.HTTPError as e:
        raise ConfigError(f"setWebhook request failed: {e}") from e

    if response.status_code >= 400:
        raise ConfigError(f"setWebhook error: status={response.status_code} body={response.text}")
    try:
        result = response.json()
    except ValueError as e:
        raise ConfigError(f"setWebhook returned invalid json: {e}") from e
    if not isinstance(result, dict) or not result.get("ok"):
        raise ConfigError("setWebhook response not ok")

    logger.info(f"Telegram webhook registered at {config.telegram_webhook_url}")
