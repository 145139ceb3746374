"""Find-or-create registration of the build-trigger webhook.

Searches the repository's hook pages for one already pointing at the callback
URL and replaces it, or creates a new hook when none matches. Search and write
are two separate calls, so two callers racing on the same repository can both
create a hook; duplicate notifications are tolerated downstream.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..scm.exceptions import TransportError
from ..scm.pagination import paginate_offset
from ..transport.executor import HttpExecutor
from .models import WebhookRegistration
from .validation import check_response_error

logger = logging.getLogger(__name__)

API_URL = "https://api.bitbucket.org/2.0"
WEBHOOK_PAGE_SIZE = 30
WEBHOOK_DESCRIPTION = "Screwdriver-CD build trigger"
DEFAULT_EVENTS = (
    "repo:push",
    "pullrequest:created",
    "pullrequest:fulfilled",
    "pullrequest:rejected",
    "pullrequest:updated",
)


class WebhookRegistrar:
    """Idempotently attaches a webhook to Bitbucket repositories."""

    def __init__(self, executor: HttpExecutor, api_url: str = API_URL):
        self._executor = executor
        self._api_url = api_url

    def _hooks_url(self, repo_id: str) -> str:
        return f"{self._api_url}/repositories/{repo_id}/hooks"

    async def find_webhook(
        self,
        repo_id: str,
        url: str,
        token: str,
        page: int = 1,
    ) -> Optional[WebhookRegistration]:
        """Look for a hook on the repository whose url equals ``url``.

        Pages are requested one at a time starting at ``page``; a full page
        without a match leads to the next one. The first failing page aborts
        the search with its ProviderError.
        """

        async def fetch_page(params: Dict[str, Any]) -> Dict[str, Any]:
            response = await self._executor.run_command(
                "GET",
                self._hooks_url(repo_id),
                token=token,
                params=params,
            )
            check_response_error(response)
            return response.body

        pages = paginate_offset(
            fetch_page,
            per_page=WEBHOOK_PAGE_SIZE,
            start_page=page,
        )
        try:
            async for hook in pages:
                if hook.get("url") == url:
                    return WebhookRegistration.model_validate(hook)
        finally:
            await pages.aclose()

        return None

    async def create_or_update_webhook(
        self,
        repo_id: str,
        url: str,
        token: str,
        hook_info: Optional[WebhookRegistration] = None,
        actions: Optional[Sequence[str]] = None,
    ) -> None:
        """PUT over ``hook_info`` when given, otherwise POST a new hook."""
        body = {
            "description": WEBHOOK_DESCRIPTION,
            "url": url,
            "active": True,
            "events": list(actions) if actions else list(DEFAULT_EVENTS),
        }

        if hook_info:
            logger.info("Updating webhook %s on %s", hook_info.uuid, repo_id)
            response = await self._executor.run_command(
                "PUT",
                f"{self._hooks_url(repo_id)}/{hook_info.uuid}",
                token=token,
                json=body,
            )
        else:
            logger.info("Creating webhook on %s", repo_id)
            response = await self._executor.run_command(
                "POST",
                self._hooks_url(repo_id),
                token=token,
                json=body,
                idempotent=False,
            )

        check_response_error(response)

    async def add_webhook(
        self,
        repo_id: str,
        url: str,
        token: str,
        actions: Optional[List[str]] = None,
    ) -> None:
        """Find the hook for ``url`` and create or update it."""
        hook_info = await self.find_webhook(repo_id=repo_id, url=url, token=token, page=1)

        try:
            await self.create_or_update_webhook(
                repo_id=repo_id,
                url=url,
                token=token,
                hook_info=hook_info,
                actions=actions,
            )
        except TransportError:
            if hook_info is not None:
                raise
            # The POST may have landed before the connection dropped
            if await self._verify_created(repo_id, url, token):
                logger.warning(
                    "Webhook create on %s lost its response but the hook exists", repo_id
                )
                return
            raise

    async def _verify_created(self, repo_id: str, url: str, token: str) -> bool:
        """Post-creation re-verification after an ambiguous create."""
        try:
            return await self.find_webhook(repo_id=repo_id, url=url, token=token) is not None
        except TransportError:
            return False
