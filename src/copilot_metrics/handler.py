"""Invocation entry points: the AWS Lambda handler and the console command."""

import asyncio
import json
import logging
import os
import sys
from typing import Any, Callable, Dict, Optional, TextIO

from pydantic import ValidationError

from .config import Settings, get_settings
from .http_client import close_http_client
from .models import RunResult
from .observability import clear_log_context, configure_logging
from .pipeline import build_pipeline

logger = logging.getLogger(__name__)

CONFIGURATION_SCOPE = "configuration"

# Time kept back from the Lambda budget to merge results and close the client
DEADLINE_MARGIN_SECONDS = 10.0


def configuration_failure(exc: ValidationError) -> RunResult:
    """Describe invalid or missing settings as a single run failure."""
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "settings"
        problems.append(f"{field.upper()}: {error.get('msg', 'invalid value')}")
    return RunResult(
        failures=[
            {
                "scope": CONFIGURATION_SCOPE,
                "error": "invalid configuration: " + "; ".join(problems),
            }
        ]
    )


async def run(
    settings_factory: Callable[[], Settings] = Settings,
    deadline_seconds: Optional[float] = None,
    run_id: Optional[str] = None,
    log_stream: Optional[TextIO] = None,
) -> RunResult:
    """Load settings, run the pipeline and release the HTTP client.

    Missing or invalid settings never raise; they are returned as a
    ``configuration`` failure.
    """
    clear_log_context()
    try:
        settings = settings_factory()
    except ValidationError as exc:
        configure_logging(
            environment=os.getenv("ENVIRONMENT", "development"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            stream=log_stream,
        )
        result = configuration_failure(exc)
        logger.error(result.failures[0]["error"])
        return result

    configure_logging(
        environment=settings.environment,
        log_level=settings.log_level,
        stream=log_stream,
    )

    pipeline = build_pipeline(settings, deadline_seconds=deadline_seconds, run_id=run_id)
    try:
        return await pipeline.run()
    finally:
        await close_http_client()


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry point, triggered once a day by a scheduler."""
    deadline_seconds = None
    run_id = None
    if context is not None:
        run_id = getattr(context, "aws_request_id", None)
        if hasattr(context, "get_remaining_time_in_millis"):
            remaining = context.get_remaining_time_in_millis() / 1000.0
            deadline_seconds = max(remaining - DEADLINE_MARGIN_SECONDS, 0.0)

    result = asyncio.run(run(deadline_seconds=deadline_seconds, run_id=run_id))
    return result.to_dict()


def main() -> int:
    """Console entry point; exits non-zero when any scope failed."""
    result = asyncio.run(run(get_settings, log_stream=sys.stderr))
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
