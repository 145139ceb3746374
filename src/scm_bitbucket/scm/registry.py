"""Registry of configured SCM plugins keyed by scm context."""

import logging
from typing import Any, Dict, List, Mapping, Optional

from .base import ScmPlugin
from .exceptions import WebhookPayloadError

logger = logging.getLogger(__name__)


class ScmRegistry:
    """Registry for managing SCM plugins.

    A plugin is registered under every scm context it reports, so several
    accounts of the same provider can be hosted side by side.
    """

    def __init__(self):
        self._plugins: Dict[str, ScmPlugin] = {}

    def register(self, plugin: ScmPlugin):
        """Register a plugin under each of its scm contexts."""
        for scm_context in plugin.get_scm_contexts():
            if scm_context in self._plugins:
                logger.warning("Replacing plugin registered for %s", scm_context)
            self._plugins[scm_context] = plugin
            logger.info("Registered SCM plugin: %s", scm_context)

    def get(self, scm_context: str) -> Optional[ScmPlugin]:
        return self._plugins.get(scm_context)

    def list_scm_contexts(self) -> List[str]:
        return list(self._plugins.keys())

    def plugins(self) -> List[ScmPlugin]:
        """Distinct registered plugins in registration order."""
        seen: List[ScmPlugin] = []
        for plugin in self._plugins.values():
            if not any(plugin is known for known in seen):
                seen.append(plugin)
        return seen

    async def find_webhook_handler(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> Optional[ScmPlugin]:
        """Return the first plugin that claims the webhook delivery."""
        for plugin in self.plugins():
            if await plugin.can_handle_webhook(headers, payload):
                return plugin
        return None

    async def find_payload_fault(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> Optional[WebhookPayloadError]:
        """Return the error of the first plugin that recognizes the event but
        cannot normalize its payload.

        Ownership checks report malformed deliveries as "not mine"; this tells
        a malformed supported event apart from one nobody handles.
        """
        for plugin in self.plugins():
            try:
                await plugin.parse_hook(headers, payload)
            except WebhookPayloadError as exc:
                return exc
        return None

    def stats(self) -> Dict[str, Any]:
        """Merged stats of every plugin, keyed by scm context."""
        merged: Dict[str, Any] = {}
        for plugin in self.plugins():
            merged.update(plugin.stats())
        return merged

    async def aclose(self):
        for plugin in self.plugins():
            close = getattr(plugin, "aclose", None)
            if close is not None:
                await close()
