"""
Logfire observability configuration for AdLens.

Provides tracing for:
- Batch creative fetches (one span per invocation, one per chunk)
- Pydantic model validation

Usage:
    # At app startup
    from adlens.core.observability import setup_logfire
    setup_logfire()

    # In services
    import logfire

    with logfire.span("fetch_creatives_batch", workspace_id=workspace_id):
        ...

Environment Variables:
    LOGFIRE_TOKEN: Your Logfire write token (required to send data)
    LOGFIRE_PROJECT_NAME: Project name in Logfire dashboard
    LOGFIRE_ENVIRONMENT: Environment name (development, staging, production)
"""

import os
import logging
from typing import Optional

import logfire

logger = logging.getLogger(__name__)


def setup_logfire(
    project_name: Optional[str] = None,
    environment: Optional[str] = None,
    service_name: str = "adlens"
) -> bool:
    """
    Configure Logfire for observability.

    Args:
        project_name: Logfire project name (or LOGFIRE_PROJECT_NAME env var)
        environment: Environment name (or LOGFIRE_ENVIRONMENT env var)
        service_name: Service name for tracing

    Returns:
        True if Logfire was configured to send data, False if skipped (no token)
    """
    token = os.environ.get("LOGFIRE_TOKEN")
    if not token:
        logger.info("LOGFIRE_TOKEN not set, skipping Logfire configuration")
        logfire.configure(send_to_logfire=False, console=False)
        return False

    project = project_name or os.environ.get("LOGFIRE_PROJECT_NAME", "adlens")
    env = environment or os.environ.get("LOGFIRE_ENVIRONMENT", "development")

    try:
        logfire.configure(
            token=token,
            service_name=service_name,
            environment=env,
            send_to_logfire=True,
        )
        logfire.instrument_pydantic()

        logger.info(f"Logfire configured: project={project}, environment={env}")
        return True

    except Exception as e:
        logger.error(f"Failed to configure Logfire: {e}")
        return False
