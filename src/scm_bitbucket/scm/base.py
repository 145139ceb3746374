"""Capability interface every SCM backend plugin conforms to."""

from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class ScmPlugin(Protocol):
    """Protocol for SCM backend plugins.

    One conforming type per backend; the platform picks a plugin by scm
    context and never relies on a shared base class.
    """

    async def parse_url(self, checkout_url: str, token: Optional[str] = None) -> str:
        """Resolve a checkout URL to an SCM URI."""
        ...

    async def parse_hook(
        self, headers: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """Normalize a webhook delivery, or None when unsupported."""
        ...

    async def can_handle_webhook(
        self, headers: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> bool:
        """Whether this plugin owns the webhook delivery."""
        ...

    async def add_webhook(
        self,
        scm_uri: str,
        token: str,
        webhook_url: str,
        actions: Optional[List[str]] = None,
    ) -> None:
        ...

    async def decorate_author(self, username: str, token: Optional[str] = None) -> Dict[str, Any]:
        ...

    async def decorate_url(self, scm_uri: str, token: Optional[str] = None) -> Dict[str, Any]:
        ...

    async def decorate_commit(
        self, scm_uri: str, sha: str, token: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

    async def get_permissions(self, scm_uri: str, token: str) -> Dict[str, bool]:
        ...

    async def get_commit_sha(
        self, scm_uri: str, token: Optional[str] = None, pr_num: Optional[int] = None
    ) -> str:
        ...

    async def get_file(
        self, scm_uri: str, path: str, token: Optional[str] = None, ref: Optional[str] = None
    ) -> str:
        ...

    async def update_commit_status(
        self,
        scm_uri: str,
        sha: str,
        build_status: str,
        token: str,
        url: str,
        job_name: str,
        pipeline_id: int,
    ) -> Any:
        ...

    async def get_bell_configuration(self) -> Dict[str, Dict[str, Any]]:
        ...

    async def get_checkout_command(self, config: Mapping[str, Any]) -> Dict[str, str]:
        ...

    async def get_opened_prs(self, scm_uri: str, token: Optional[str] = None) -> List[Dict[str, Any]]:
        ...

    async def get_pr_info(
        self, scm_uri: str, pr_num: int, token: Optional[str] = None
    ) -> Dict[str, Any]:
        ...

    async def get_branch_list(self, scm_uri: str, token: Optional[str] = None) -> List[Dict[str, str]]:
        ...

    def get_scm_contexts(self) -> List[str]:
        ...

    def stats(self) -> Dict[str, Any]:
        ...
