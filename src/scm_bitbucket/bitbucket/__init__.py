"""Bitbucket Cloud backend."""

from .scm import BitbucketScm

__all__ = ["BitbucketScm"]
