"""Translate httpx failures into the upstream error taxonomy."""

from contextlib import asynccontextmanager

import httpx

from app.errors import UpstreamError, UpstreamTimeout
from app.logging_config import get_logger

logger = get_logger("upstream")


@asynccontextmanager
async def upstream_errors(service: str):
    try:
        yield
    except httpx.TimeoutException as e:
        logger.warning(f"{service} request timed out", extra={"context": {"service": service}})
        raise UpstreamTimeout(f"{service} request timed out", service=service) from e
    except httpx.HTTPError as e:
        logger.error(f"{service} request failed: {e}", extra={"context": {"service": service}})
        raise UpstreamError(f"{service} request failed: {e}", service=service) from e


def check_response(response: httpx.Response, service: str) -> httpx.Response:
    if response.status_code >= 400:
        logger.error(
            f"{service} error: {response.status_code}",
            extra={"context": {"service": service, "body": response.text[:300]}},
        )
        raise UpstreamError(f"{service} API error: {response.status_code}", service=service)
    return response
