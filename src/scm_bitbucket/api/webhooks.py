"""Webhook receiver: routes Bitbucket deliveries to the owning SCM plugin."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, Response

from ..observability.logging import clear_log_context, set_log_context
from ..scm.exceptions import WebhookPayloadError
from ..scm.registry import ScmRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


def get_registry(request: Request) -> ScmRegistry:
    return request.app.state.scm_registry


@router.post("/webhooks")
async def receive_webhook(request: Request):
    """Normalize a delivery into the canonical event.

    Returns 200 with the event, 204 when no plugin owns the delivery or the
    event is not one the platform builds on, 400 when a supported event
    carries a malformed payload.
    """
    headers: Dict[str, Any] = dict(request.headers)
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")

    set_log_context(hook_id=headers.get("x-request-uuid"))
    try:
        registry = get_registry(request)
        plugin = await registry.find_webhook_handler(headers, payload)
        if plugin is None:
            fault = await registry.find_payload_fault(headers, payload)
            if fault is not None:
                logger.warning("Rejecting malformed %s delivery: %s", headers.get("x-event-key"), fault)
                raise HTTPException(status_code=400, detail=str(fault))

            logger.info("No SCM plugin handles event %s", headers.get("x-event-key"))
            return Response(status_code=204)

        set_log_context(scm_context=plugin.get_scm_contexts()[0])
        try:
            event = await plugin.parse_hook(headers, payload)
        except WebhookPayloadError as exc:
            raise HTTPException(status_code=400, detail=str(exc))

        if event is None:
            return Response(status_code=204)

        logger.info("Accepted %s:%s event", event["type"], event["action"])
        return event
    finally:
        clear_log_context()
