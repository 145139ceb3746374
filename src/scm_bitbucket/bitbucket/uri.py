"""Checkout URL and SCM URI codecs.

A checkout URL is what users type (``git@bitbucket.org:batman/test.git#master``).
An SCM URI is the adapter's compact repository handle,
``hostname:owner/{repo-uuid}:branch``. The repository UUID is immutable, so the
handle survives repository renames.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..scm.exceptions import ScmValidationError

# Shared checkout-URL grammar: ssh or https form, ``.git`` suffix, optional ``#branch``
CHECKOUT_URL = re.compile(
    r"^(?:(?:https://(?:[^@/:\s]+@)?)|git@)"
    r"([^/:\s]+)(?:/|:)([^/:\s]+)/([^\s]+?)(?:\.git)(#[^\s]*)?$"
)
MATCH_COMPONENT_HOSTNAME = 1
MATCH_COMPONENT_USER = 2
MATCH_COMPONENT_REPO = 3
MATCH_COMPONENT_BRANCH = 4

SEPARATOR = ":"


@dataclass(frozen=True)
class CheckoutUrlInfo:
    """Components of a checkout URL."""
    hostname: str
    username: str
    repo: str
    branch: Optional[str] = None


def parse_checkout_url(checkout_url: str) -> CheckoutUrlInfo:
    """Split a checkout URL into hostname, owner, repo and branch."""
    matched = CHECKOUT_URL.match(checkout_url or "")
    if not matched:
        raise ScmValidationError(f"Invalid checkout URL: {checkout_url}")

    branch = matched.group(MATCH_COMPONENT_BRANCH)
    return CheckoutUrlInfo(
        hostname=matched.group(MATCH_COMPONENT_HOSTNAME),
        username=matched.group(MATCH_COMPONENT_USER),
        repo=matched.group(MATCH_COMPONENT_REPO),
        branch=branch[1:] if branch and len(branch) > 1 else None,
    )


def _escape(value: str) -> str:
    return value.replace("%", "%25").replace(":", "%3A")


def _unescape(value: str) -> str:
    return value.replace("%3A", ":").replace("%3a", ":").replace("%25", "%")


@dataclass(frozen=True)
class ScmUri:
    """Structured ``hostname:repoId:branch`` handle.

    Colons and percent signs inside a field are percent-escaped when
    serialized, so a branch such as ``release:1.0`` round-trips intact.
    """
    hostname: str
    repo_id: str
    branch: str

    def __str__(self) -> str:
        return SEPARATOR.join(
            _escape(part) for part in (self.hostname, self.repo_id, self.branch)
        )

    @classmethod
    def parse(cls, scm_uri: str) -> "ScmUri":
        parts = (scm_uri or "").split(SEPARATOR)
        if len(parts) != 3 or not all(parts[:2]):
            raise ScmValidationError(f"Invalid SCM URI: {scm_uri}")

        hostname, repo_id, branch = (_unescape(part) for part in parts)
        return cls(hostname=hostname, repo_id=repo_id, branch=branch)

    @property
    def owner(self) -> str:
        return self.repo_id.split("/", 1)[0]

    @property
    def repo_uuid(self) -> str:
        _, _, uuid = self.repo_id.partition("/")
        return uuid


def get_scm_uri_parts(scm_uri: str) -> ScmUri:
    """Parse a serialized SCM URI."""
    return ScmUri.parse(scm_uri)
