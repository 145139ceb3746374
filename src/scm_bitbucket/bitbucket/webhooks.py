"""Webhook normalisation for Bitbucket events.

Turns a Bitbucket delivery (``x-event-key`` header + JSON payload) into the
platform's canonical WebhookEvent. Events the platform does not build on
resolve to None rather than an error: Bitbucket retries and alerts on handler
failures, and an uninteresting event is not a failure.

    repo:push                 -> repo / push
    pullrequest:created       -> pr / opened
    pullrequest:updated       -> pr / synchronized
    pullrequest:fulfilled     -> pr / closed
    pullrequest:rejected      -> pr / closed
    anything else             -> None

A supported event whose payload lacks the fields it must carry raises
WebhookPayloadError; that is a fault, not an unsupported event.
"""

import logging
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from ..scm.exceptions import WebhookPayloadError
from .models import WebhookEvent
from .validation import reach

logger = logging.getLogger(__name__)

EVENT_KEY_HEADER = "x-event-key"
REQUEST_UUID_HEADER = "x-request-uuid"

PR_ACTIONS = {
    "created": "opened",
    "updated": "synchronized",
    "fulfilled": "closed",
    # Misspelling kept for deliveries configured against the old key
    "fullfilled": "closed",
    "rejected": "closed",
}


def get_header(headers: Optional[Mapping[str, Any]], key: str) -> Optional[str]:
    """Case-insensitive header lookup."""
    if not headers:
        return None
    target = key.lower()
    for header, value in headers.items():
        if header.lower() == target and isinstance(value, str):
            return value
    return None


def build_checkout_url(html_link: Optional[str]) -> str:
    """``https://bitbucket.org/batman/test`` -> ``https://bitbucket.org/batman/test.git``"""
    if not html_link or not isinstance(html_link, str):
        raise WebhookPayloadError("Webhook payload has no repository.links.html.href")

    try:
        link = urlparse(html_link)
        hostname = link.hostname
    except ValueError as exc:
        raise WebhookPayloadError(f"Unparseable repository link: {html_link}") from exc

    if not link.scheme or not hostname:
        raise WebhookPayloadError(f"Unparseable repository link: {html_link}")
    return f"{link.scheme}://{hostname}{link.path}.git"


class WebhookNormalizer:
    """Classifies deliveries and extracts canonical events.

    Args:
        hostname: Bitbucket host this adapter owns (``bitbucket.org``).
        scm_context: Context string stamped on every event.
    """

    def __init__(self, hostname: str, scm_context: str):
        self.hostname = hostname
        self.scm_context = scm_context

    def parse(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> Optional[WebhookEvent]:
        """Return the canonical event, or None when the event is unsupported."""
        event_key = get_header(headers, EVENT_KEY_HEADER)
        if not event_key:
            logger.debug("Ignoring delivery without %s header", EVENT_KEY_HEADER)
            return None

        kind, _, action = event_key.partition(":")
        hook_id = get_header(headers, REQUEST_UUID_HEADER)

        try:
            if kind == "repo" and action == "push":
                return self._parse_push(payload, hook_id)
            if kind == "pullrequest" and action in PR_ACTIONS:
                return self._parse_pull_request(payload, PR_ACTIONS[action], hook_id)
        except ValidationError as exc:
            raise WebhookPayloadError(f"{event_key} payload has invalid fields: {exc}") from exc

        logger.info("Ignoring unsupported Bitbucket event %s", event_key)
        return None

    def _parse_push(
        self, payload: Mapping[str, Any], hook_id: Optional[str]
    ) -> Optional[WebhookEvent]:
        changes = reach(payload, "push.changes")
        if not changes:
            raise WebhookPayloadError("repo:push payload has no push.changes")
        if not isinstance(changes, list):
            raise WebhookPayloadError("repo:push payload push.changes is not a list")

        change = changes[0]
        if not reach(change, "new"):
            # Branch or tag deletion: nothing to build
            logger.info("Ignoring repo:push without a new ref (deletion)")
            return None

        return WebhookEvent(
            type="repo",
            action="push",
            username=reach(payload, "actor.uuid"),
            checkout_url=build_checkout_url(reach(payload, "repository.links.html.href")),
            branch=reach(change, "new.name"),
            sha=reach(change, "new.target.hash"),
            last_commit_message=reach(change, "new.target.message", default=""),
            hook_id=hook_id,
            scm_context=self.scm_context,
        )

    def _parse_pull_request(
        self, payload: Mapping[str, Any], action: str, hook_id: Optional[str]
    ) -> WebhookEvent:
        pull_request = reach(payload, "pullrequest")
        if not pull_request or not isinstance(pull_request, dict):
            raise WebhookPayloadError("pullrequest payload has no pullrequest object")

        return WebhookEvent(
            type="pr",
            action=action,
            username=reach(payload, "actor.uuid"),
            checkout_url=build_checkout_url(reach(payload, "repository.links.html.href")),
            branch=reach(pull_request, "destination.branch.name"),
            sha=reach(pull_request, "source.commit.hash"),
            pr_num=reach(pull_request, "id"),
            pr_ref=reach(pull_request, "source.branch.name"),
            hook_id=hook_id,
            scm_context=self.scm_context,
        )

    def can_handle(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> bool:
        """True when the delivery is supported and points at our host.

        Never raises: any failure while normalizing means "not ours".
        """
        try:
            event = self.parse(headers, payload)
        except Exception as exc:
            logger.debug("Webhook not handled: %s", exc)
            return False

        if event is None:
            return False

        _, _, host_and_path = event.checkout_url.partition("://")
        return host_and_path.startswith(f"{self.hostname}/")
