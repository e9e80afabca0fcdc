import os
from typing import Any

import dotenv
import logfire

TRUTHY = ("1", "true", "yes", "on")


def monitoring_requested(logfire_enabled: bool | Any = None) -> bool:
    value = logfire_enabled if logfire_enabled is not None else os.getenv("LOGFIRE_ENABLED")
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def enable_monitoring(
    logfire_enabled: bool | Any = None,
    instrument_httpx: bool = False,
    **options,
) -> bool:
    """Configure logfire when ``LOGFIRE_ENABLED`` (or the argument) is set.

    Model requests are traced through the pydantic-ai instrumentation.
    Returns whether monitoring was enabled.
    """
    dotenv.load_dotenv()
    if not monitoring_requested(logfire_enabled):
        return False

    console = options.pop("console", logfire.ConsoleOptions(show_project_link=False))
    if "token" not in options and (token := os.getenv("LOGFIRE_TOKEN")):
        options["token"] = token
    options.setdefault("service_name", "plumb")

    logfire.configure(**options, console=console)
    logfire.instrument_pydantic_ai()
    if instrument_httpx:
        logfire.instrument_httpx(capture_all=True)
    return True
