"""Shared logging utilities for kopf handlers.

This module provides common logging functions used across the operator's
handlers to ensure consistent logging format and behavior.
"""

import logging
from typing import Any

from pod_affinity_webhook.constants import HANDLER_ENTRY_LOG_LEVEL

logger = logging.getLogger(__name__)


def log_handler_entry(
    handler_type: str,
    resource_type: str,
    name: str,
    namespace: str | None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log handler invocation at the configured level.

    Args:
        handler_type: Type of handler (event, timer, startup, promotion)
        resource_type: Type of resource (mutatingwebhookconfiguration, secret)
        name: Resource name
        namespace: Resource namespace, None for cluster scoped resources
        extra: Additional context to include in structured log
    """
    log_extra = {
        "handler_type": handler_type,
        "resource_type": resource_type,
        "resource_name": name,
        "namespace": namespace,
    }
    if extra:
        log_extra.update(extra)

    location = f" in {namespace}" if namespace else ""
    logger.log(
        HANDLER_ENTRY_LOG_LEVEL,
        f"Handler invoked: {handler_type} {resource_type}/{name}{location}",
        extra=log_extra,
    )
