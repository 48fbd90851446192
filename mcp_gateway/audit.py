"""
Audit trail for MCP calls.

Every inbound call is recorded when it is received and again with its
outcome, including calls rejected before a role is known. Events go to the
`mcp-gateway.audit` logger, which main() also points at the JSON-lines
audit file.
"""

import contextlib
from typing import Any

from flask import request

from gateway_logging import get_logger


logger = get_logger("mcp-gateway")
audit_logger = get_logger("mcp-gateway.audit")


def audit_log(
    event: str,
    *,
    event_type: str = "mcp_call",
    success: bool | None = None,
    **details: Any,
) -> None:
    """Write one structured audit event.

    `success` is omitted for events written before the outcome is known.
    Audit output is a side channel: a failure here never changes the
    response sent to the caller.
    """
    try:
        log_data = {
            "event_type": event_type,
            "source_ip": request.remote_addr,
            **details,
        }
        if success is not None:
            log_data["success"] = success
        if success is False:
            audit_logger.warning(event, **log_data)
        else:
            audit_logger.info(event, **log_data)
    except Exception as e:
        with contextlib.suppress(Exception):
            logger.error("Audit log write failed", error=str(e), error_type=type(e).__name__)
