"""F1GPT server entry point."""

import asyncio
import logging

from f1gpt.config import settings
from f1gpt.server import ChatServer

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, settings.log_level),
)
logger = logging.getLogger(__name__)


async def _serve() -> None:
    server = ChatServer()
    await server.start()
    try:
        await asyncio.Event().wait()
    finally:
        await server.stop()


def main() -> None:
    """Start the chat API server."""
    if not settings.openai_api_key:
        logger.warning(
            "OPENAI_API_KEY is empty, answers will be generated without retrieved context"
        )
    model = (
        settings.claude_model
        if settings.completion_provider == "anthropic"
        else settings.chat_model
    )
    logger.info(
        "Starting F1GPT with %s model %s on port %d...",
        settings.completion_provider,
        model,
        settings.port,
    )
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Shutting down")


if __name__ == "__main__":
    main()
