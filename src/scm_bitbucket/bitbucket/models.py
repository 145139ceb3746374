"""Data shapes handed back to the orchestration platform.

Fields are snake_case in Python and serialize with the platform's camelCase
keys (``checkoutUrl``, ``prNum`` ...).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that accepts either naming and dumps camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class WebhookEvent(CamelModel):
    """Canonical, provider-agnostic webhook event."""

    type: Literal["pr", "repo"]
    action: Literal["opened", "closed", "synchronized", "push"]
    username: Optional[str] = None
    checkout_url: str
    branch: Optional[str] = None
    sha: Optional[str] = None
    pr_num: Optional[int] = None
    pr_ref: Optional[str] = None
    last_commit_message: Optional[str] = None
    hook_id: Optional[str] = None
    scm_context: str


class WebhookRegistration(BaseModel):
    """A hook as listed by Bitbucket, trimmed to what the registrar needs."""

    model_config = ConfigDict(extra="ignore")

    uuid: str
    url: str
    events: List[str] = []


class PullRequestInfo(CamelModel):
    name: str
    ref: str
    sha: Optional[str] = None
    url: Optional[str] = None


class Permissions(BaseModel):
    admin: bool = False
    push: bool = False
    pull: bool = False
