# app/services/openai_service.py
"""
OpenAI client for sales coaching tips.

Thin wrapper around AsyncOpenAI: one chat completion in, raw text out.
Prompt building and response parsing live with the callers; every failure
here surfaces as TipGenerationError so callers can fall back to
deterministic tips.
"""

import asyncio
from typing import Any

import openai
from openai import AsyncOpenAI

from app.config import settings
from app.features.pipeline_engine.domain import TipGenerationError
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class OpenAIService:
    """
    Service for OpenAI chat completions used as a tip generator.

    The client is created lazily so the application starts without an API key;
    in that case every call raises TipGenerationError (non-recoverable).
    """

    def __init__(self):
        self.client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if self.client is not None:
            return self.client

        if not settings.tips_enabled():
            raise TipGenerationError(
                "OPENAI_API_KEY not configured", operation="init", recoverable=False
            )

        self.client = AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.TIP_TIMEOUT_SECONDS,
            max_retries=0,
        )
        logger.info(
            "OpenAI client initialized",
            model=settings.OPENAI_MODEL,
            timeout=settings.TIP_TIMEOUT_SECONDS,
        )
        return self.client

    async def complete(
        self, system_message: str, user_message: str, *, json_mode: bool = False
    ) -> str:
        """
        Run one chat completion and return the stripped message content.

        Raises:
            TipGenerationError: disabled, timed out, API error or empty response
        """
        client = self._get_client()

        last_error: Exception | None = None
        max_attempts = max(1, settings.TIP_MAX_RETRIES)

        for attempt in range(max_attempts):
            try:
                request: dict[str, Any] = {
                    "model": settings.OPENAI_MODEL,
                    "messages": [
                        {"role": "system", "content": system_message},
                        {"role": "user", "content": user_message},
                    ],
                    "max_tokens": settings.TIP_MAX_TOKENS,
                    "temperature": settings.TIP_TEMPERATURE,
                }
                if json_mode:
                    request["response_format"] = {"type": "json_object"}

                response = await asyncio.wait_for(
                    client.chat.completions.create(**request),
                    timeout=settings.TIP_TIMEOUT_SECONDS,
                )

                if not response.choices or not response.choices[0].message.content:
                    raise TipGenerationError("Empty response from OpenAI API", operation="complete")

                result = response.choices[0].message.content.strip()
                logger.info(
                    "OpenAI API call successful",
                    attempt=attempt + 1,
                    response_length=len(result),
                    usage_tokens=response.usage.total_tokens if response.usage else 0,
                )
                return result

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 5)
                logger.warning(
                    "OpenAI rate limit hit, retrying",
                    attempt=attempt + 1,
                    wait_time=wait_time,
                    error=str(e),
                )
                if attempt < max_attempts - 1:
                    await asyncio.sleep(wait_time)

            except (TimeoutError, openai.APITimeoutError) as e:
                last_error = e
                logger.warning(
                    "OpenAI API timeout",
                    attempt=attempt + 1,
                    timeout=settings.TIP_TIMEOUT_SECONDS,
                )
                # A timeout already used up the full request deadline
                break

            except openai.APIError as e:
                last_error = e
                status_code = getattr(e, "status_code", None)
                if status_code is not None and 400 <= status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

            except TipGenerationError:
                raise

            except Exception as e:
                last_error = e
                logger.error(
                    "Unexpected error calling OpenAI",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                break

        logger.error(
            "OpenAI API call failed",
            attempts=max_attempts,
            final_error=str(last_error),
            error_type=type(last_error).__name__ if last_error else None,
        )
        raise TipGenerationError(
            f"OpenAI API failed: {last_error}", operation="complete", recoverable=True
        ) from last_error

    async def health_check(self) -> dict[str, Any]:
        """Configuration-only health; does not spend tokens."""
        return {
            "healthy": True,
            "service": "openai_service",
            "enabled": settings.tips_enabled(),
            "client_initialized": self.client is not None,
            "configuration": {
                "model": settings.OPENAI_MODEL,
                "max_tokens": settings.TIP_MAX_TOKENS,
                "temperature": settings.TIP_TEMPERATURE,
                "timeout_seconds": settings.TIP_TIMEOUT_SECONDS,
            },
        }


# Singleton instance for application use
openai_service = OpenAIService()


async def openai_service_health() -> dict[str, Any]:
    """Check OpenAI service health."""
    return await openai_service.health_check()
