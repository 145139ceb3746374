"""Bitbucket Cloud SCM plugin.

Implements the platform's SCM capability set against Bitbucket API v2.
API base: https://api.bitbucket.org/2.0/

Read-only lookups authenticate with the adapter's own service token (see
tokens.py); calls made on behalf of a user (permissions, commit statuses,
webhook registration) use the token the platform passes in.
"""

import asyncio
import logging
import re
import time
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import unquote

from ..config import BitbucketConfig
from ..scm.exceptions import ScmValidationError
from ..scm.pagination import collect_all_pages, paginate_offset
from ..transport.executor import HttpExecutor
from .checkout import build_checkout_command
from .models import Permissions, PullRequestInfo
from .registrar import WebhookRegistrar
from .tokens import TokenManager
from .uri import ScmUri, parse_checkout_url
from .validation import check_response_error, check_status, reach
from .webhooks import WebhookNormalizer

logger = logging.getLogger(__name__)

API_URL = "https://api.bitbucket.org/2.0"
REPO_URL = f"{API_URL}/repositories"
USER_URL = f"{API_URL}/users"
BRANCH_PAGE_SIZE = 100
DEFAULT_BRANCH = "master"

STATE_MAP = {
    "SUCCESS": "SUCCESSFUL",
    "RUNNING": "INPROGRESS",
    "QUEUED": "INPROGRESS",
    "FAILURE": "FAILED",
    "ABORTED": "STOPPED",
}

PERMISSION_ROLES = {
    "admin": "admin",
    "push": "contributor",
    "pull": None,
}


class BitbucketScm:
    """Bitbucket Cloud backend for the platform's SCM contract.

    Args:
        config: Plugin options; see BitbucketConfig. Validated eagerly, so a
            missing OAuth credential fails here before any network activity.
        executor: HTTP executor to use instead of one built from ``fusebox``.
        token_manager: Service token lifecycle to use instead of a fresh one.
        clock: Time source in seconds, forwarded to the token manager.
    """

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        executor: Optional[HttpExecutor] = None,
        token_manager: Optional[TokenManager] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = BitbucketConfig.load(config)

        # Only bitbucket.org is supported for now
        self.hostname = "bitbucket.org"
        self.scm_context = f"bitbucket:{self.hostname}"

        fusebox = self.config.fusebox
        self._owns_executor = executor is None
        self.executor = executor or HttpExecutor(
            timeout=fusebox.timeout,
            max_retries=fusebox.max_retries,
            base_delay=fusebox.base_delay,
            max_delay=fusebox.max_delay,
            failure_threshold=fusebox.failure_threshold,
            reset_timeout=fusebox.reset_timeout,
        )
        self.tokens = token_manager or TokenManager(
            self.config.oauth_client_id,
            self.config.oauth_client_secret,
            self.executor,
            clock=clock,
        )
        self.normalizer = WebhookNormalizer(self.hostname, self.scm_context)
        self.registrar = WebhookRegistrar(self.executor, api_url=API_URL)

    async def _get(self, url: str, token: str, **kwargs: Any):
        return await self.executor.run_command("GET", url, token=token, **kwargs)

    # ── URL parsing ──────────────────────────────────────────────────

    async def parse_url(self, checkout_url: str, token: Optional[str] = None) -> str:
        """Resolve a checkout URL to ``hostname:owner/{uuid}:branch``.

        ``token`` is accepted for platform compatibility; the lookup uses the
        service token.
        """
        repo_info = parse_checkout_url(checkout_url)
        if repo_info.hostname != self.hostname:
            raise ScmValidationError(
                "This checkoutUrl is not supported for your current login host.",
                scm_context=self.scm_context,
            )

        service_token = await self.tokens.get()
        not_found = f"Cannot find repository {checkout_url}"
        branch = repo_info.branch
        if not branch:
            response = await self._get(
                f"{REPO_URL}/{repo_info.username}/{repo_info.repo}", service_token
            )
            check_status(response, not_found_message=not_found)
            branch = reach(response.body, "mainbranch.name", default=DEFAULT_BRANCH)

        response = await self._get(
            f"{REPO_URL}/{repo_info.username}/{repo_info.repo}/refs/branches/{branch}",
            service_token,
        )
        check_status(response, not_found_message=not_found)

        repo_uuid = response.body["target"]["repository"]["uuid"]
        return str(ScmUri(
            hostname=repo_info.hostname,
            repo_id=f"{repo_info.username}/{repo_uuid}",
            branch=branch,
        ))

    # ── Webhooks ─────────────────────────────────────────────────────

    async def parse_hook(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """Normalize a webhook delivery; None for unsupported events."""
        event = self.normalizer.parse(headers, payload)
        return event.to_dict() if event else None

    async def can_handle_webhook(
        self,
        headers: Mapping[str, Any],
        payload: Mapping[str, Any],
    ) -> bool:
        return self.normalizer.can_handle(headers, payload)

    async def add_webhook(
        self,
        scm_uri: str,
        token: str,
        webhook_url: str,
        actions: Optional[List[str]] = None,
    ) -> None:
        """Attach (or refresh) the build-trigger webhook on the repository."""
        scm = ScmUri.parse(scm_uri)
        await self.registrar.add_webhook(
            repo_id=scm.repo_id,
            url=webhook_url,
            token=token,
            actions=actions,
        )

    # ── Decorations ──────────────────────────────────────────────────

    async def decorate_author(self, username: str, token: Optional[str] = None) -> Dict[str, Any]:
        """Resolve a user (uuid or nickname) to url, name, username and avatar."""
        response = await self._get(f"{USER_URL}/{username}", await self.tokens.get())
        check_status(response)

        body = response.body
        return {
            "url": reach(body, "links.html.href"),
            "name": body.get("display_name"),
            "username": body.get("username") or body.get("nickname") or username,
            "avatar": reach(body, "links.avatar.href"),
        }

    async def decorate_url(self, scm_uri: str, token: Optional[str] = None) -> Dict[str, Any]:
        """Repository link, full name and the URI's branch."""
        scm = ScmUri.parse(scm_uri)
        response = await self._get(f"{REPO_URL}/{scm.repo_id}", await self.tokens.get())
        check_status(response)

        return {
            "url": reach(response.body, "links.html.href"),
            "name": response.body.get("full_name"),
            "branch": scm.branch,
        }

    async def decorate_commit(
        self, scm_uri: str, sha: str, token: Optional[str] = None
    ) -> Dict[str, Any]:
        """Commit link, message and decorated author."""
        scm = ScmUri.parse(scm_uri)
        response = await self._get(
            f"{REPO_URL}/{scm.repo_id}/commit/{sha}", await self.tokens.get()
        )
        check_status(response)

        body = response.body
        user = reach(body, "author.user")
        if user:
            author = await self.decorate_author(user.get("uuid") or user.get("username"))
        else:
            # Commit email is not linked to a Bitbucket account
            raw = reach(body, "author.raw", default="")
            author = {"url": "", "name": raw, "username": raw, "avatar": ""}

        return {
            "url": reach(body, "links.html.href"),
            "message": body.get("message"),
            "author": author,
        }

    # ── Repository content ───────────────────────────────────────────

    async def get_commit_sha(
        self,
        scm_uri: str,
        token: Optional[str] = None,
        pr_num: Optional[int] = None,
    ) -> str:
        """Head commit of the URI's branch, or of the pull request when given."""
        if pr_num:
            pr_info = await self.get_pr_info(scm_uri, pr_num)
            return pr_info["sha"]

        scm = ScmUri.parse(scm_uri)
        response = await self._get(
            f"{REPO_URL}/{scm.repo_id}/refs/branches/{scm.branch}", await self.tokens.get()
        )
        check_status(response)
        return response.body["target"]["hash"]

    async def get_file(
        self,
        scm_uri: str,
        path: str,
        token: Optional[str] = None,
        ref: Optional[str] = None,
    ) -> str:
        """Raw contents of ``path`` at ``ref`` (default: the URI's branch)."""
        scm = ScmUri.parse(scm_uri)
        branch = ref or scm.branch
        response = await self._get(
            f"{REPO_URL}/{scm.repo_id}/src/{branch}/{path.lstrip('/')}",
            await self.tokens.get(),
        )
        check_status(response)
        return response.text

    async def get_branch_list(self, scm_uri: str, token: Optional[str] = None) -> List[Dict[str, str]]:
        """Names of every branch in the repository."""
        scm = ScmUri.parse(scm_uri)
        service_token = await self.tokens.get()

        async def fetch_page(params: Dict[str, Any]) -> Dict[str, Any]:
            response = await self._get(
                f"{REPO_URL}/{scm.repo_id}/refs/branches", service_token, params=params
            )
            check_response_error(response)
            return response.body

        branches = await collect_all_pages(
            paginate_offset(fetch_page, per_page=BRANCH_PAGE_SIZE)
        )
        return [{"name": branch["name"]} for branch in branches]

    # ── Pull requests ────────────────────────────────────────────────

    async def get_opened_prs(self, scm_uri: str, token: Optional[str] = None) -> List[Dict[str, Any]]:
        """Open pull requests as ``{name: "PR-<id>", ref: <source branch>}``."""
        scm = ScmUri.parse(scm_uri)
        response = await self._get(
            f"{REPO_URL}/{scm.repo_id}/pullrequests", await self.tokens.get()
        )
        check_response_error(response)

        return [
            {"name": f"PR-{pr['id']}", "ref": reach(pr, "source.branch.name")}
            for pr in response.body.get("values", [])
        ]

    async def get_pr_info(
        self,
        scm_uri: str,
        pr_num: int,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Name, source branch, head sha and link of one pull request."""
        scm = ScmUri.parse(scm_uri)
        response = await self._get(
            f"{REPO_URL}/{scm.repo_id}/pullrequests/{pr_num}", await self.tokens.get()
        )
        check_response_error(response)

        pr = response.body
        return PullRequestInfo(
            name=f"PR-{pr['id']}",
            ref=reach(pr, "source.branch.name"),
            sha=reach(pr, "source.commit.hash"),
            url=reach(pr, "links.html.href"),
        ).to_dict()

    # ── Permissions and statuses ─────────────────────────────────────

    async def get_permissions(self, scm_uri: str, token: str) -> Dict[str, bool]:
        """The user's admin/push/pull access, looked up concurrently.

        Each lookup lists the owner's repositories filtered by role and looks for
        this repository's uuid. Any failing lookup fails the whole call and
        cancels the lookups still in flight.
        """
        scm = ScmUri.parse(scm_uri)

        async def has_role(role: Optional[str]) -> bool:
            params = {"q": f'uuid="{scm.repo_uuid}"'}
            if role:
                params["role"] = role
            response = await self._get(f"{REPO_URL}/{scm.owner}", token, params=params)
            check_status(response)
            return any(
                repo.get("uuid") == scm.repo_uuid
                for repo in response.body.get("values", [])
            )

        lookups = [asyncio.ensure_future(has_role(role)) for role in PERMISSION_ROLES.values()]
        try:
            admin, push, pull = await asyncio.gather(*lookups)
        except BaseException:
            for pending in lookups:
                pending.cancel()
            raise
        return Permissions(admin=admin, push=push, pull=pull).model_dump()

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
        """Report a build status on a commit."""
        scm = ScmUri.parse(scm_uri)
        job = "PR" if re.match(r"^PR", job_name or "") else job_name
        context = f"Screwdriver/{pipeline_id}/{job}"

        response = await self.executor.run_command(
            "POST",
            f"{REPO_URL}/{scm.repo_id}/commit/{sha}/statuses/build",
            token=unquote(token),
            json={
                "url": url,
                "state": STATE_MAP.get(build_status),
                "key": sha,
                "description": context,
            },
            idempotent=True,
        )
        check_status(response, accepted=(200, 201))
        return response

    # ── Platform wiring ──────────────────────────────────────────────

    async def get_bell_configuration(self) -> Dict[str, Dict[str, Any]]:
        """OAuth provider configuration for the platform's login flow."""
        return {
            self.scm_context: {
                "provider": "bitbucket",
                "cookie": f"bitbucket-{self.hostname}",
                "clientId": self.config.oauth_client_id,
                "clientSecret": self.config.oauth_client_secret,
                "isSecure": self.config.https,
                "forceHttps": self.config.https,
            }
        }

    async def get_checkout_command(self, config: Mapping[str, Any]) -> Dict[str, str]:
        return build_checkout_command(
            config,
            username=self.config.username,
            email=self.config.email,
        )

    def get_scm_contexts(self) -> List[str]:
        return [self.scm_context]

    def stats(self) -> Dict[str, Any]:
        return {self.scm_context: self.executor.stats()}

    async def aclose(self):
        if self._owns_executor:
            await self.executor.aclose()
