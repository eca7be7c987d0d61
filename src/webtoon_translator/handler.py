"""AWS Lambda handler for the webtoon translator.

Each event names an action; the remaining fields are the action's request:

    {"action": "extract_chapter", "chapterId": "...", "images": [...]}
    {"action": "extract_chapters", "chapters": [...]}
    {"action": "review", "originalText": "...", "glossary": {...}}
    {"action": "finalize", "originalText": "...", "approvedSuggestions": [...]}
    {"action": "parse_response", "rawResponse": "...", "template": "review"}
    {"action": "key_stats"} / {"action": "refresh_keys", "scope": "vision"}
"""

import asyncio
import json
import logging

from pydantic import ValidationError

from webtoon_translator.config import config
from webtoon_translator.errors import (
    ConfigurationError,
    InvalidBatchError,
    InvalidRequestError,
    ProviderError,
)
from webtoon_translator.handlers import extraction, keys, quality
from webtoon_translator.infrastructure.dependency_injection import (
    DependenciesContainer,
)

# Configure root logger for Lambda (all modules will inherit this)
logging.getLogger().setLevel(logging.INFO)
logger = logging.getLogger(__name__)

CONFIGURE_KEYS_MESSAGE = "Please configure API keys and try again."

# Built once per container so key pools and usage counters survive warm starts
container = DependenciesContainer()

_loop: asyncio.AbstractEventLoop | None = None


def _run(coro):
    # One loop per warm container so cached provider clients keep their connections
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop.run_until_complete(coro)


def _dispatch(action: str, event: dict):
    if action == "extract_chapter":
        return extraction.extract_chapter(container.text_extraction_service(), event)
    if action == "extract_chapters":
        return extraction.extract_chapters(container.text_extraction_service(), event)
    if action == "review":
        return quality.review(container.quality_service(), event)
    if action == "finalize":
        return quality.finalize(container.quality_service(), event)
    if action == "parse_response":
        return quality.parse_response(event)
    if action == "key_stats":
        return keys.key_stats(container.pool_manager(), event)
    if action == "refresh_keys":
        return keys.refresh_keys(container.pool_manager(), event)
    return None


def _response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "body": json.dumps(body, ensure_ascii=False),
    }


def lambda_handler(event: dict, context) -> dict:
    """
    Lambda handler function.

    Args:
        event: Request with an "action" field.
        context: Lambda context object.

    Returns:
        Response dict with statusCode and body.
    """
    action = event.get("action")
    logger.info("Received %s request", action)

    try:
        config.validate()

        coro = _dispatch(action, event)
        if coro is None:
            return _response(400, {"error": f"Unknown action: {action}"})

        body = _run(coro)
        logger.info("%s completed", action)
        return _response(200, body)

    except (ValidationError, InvalidBatchError, InvalidRequestError) as e:
        logger.warning("Invalid %s request: %s", action, e)
        return _response(400, {"error": str(e)})

    except ConfigurationError as e:
        logger.error("Configuration error during %s: %s", action, e)
        return _response(500, {"error": str(e), "message": CONFIGURE_KEYS_MESSAGE})

    except ProviderError as e:
        logger.error("Provider error during %s: %s", action, e)
        return _response(500, {"error": f"{action} failed: {e}"})

    except Exception as e:
        logger.exception("Failed to process %s: %s", action, e)
        return _response(500, {"error": str(e)})
