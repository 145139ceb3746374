"""Provider-neutral SCM plumbing: capability protocol, registry, errors."""

from .base import ScmPlugin
from .registry import ScmRegistry

__all__ = ["ScmPlugin", "ScmRegistry"]
