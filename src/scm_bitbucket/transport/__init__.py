"""HTTP executor with retry and circuit breaking."""

from .executor import HttpExecutor, ScmResponse

__all__ = ["HttpExecutor", "ScmResponse"]
