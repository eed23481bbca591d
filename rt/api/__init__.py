"""Remote content API access."""

from .client import ContentApi, GitLabClient, client_for, ops_client_for
from .mock import MockContentApi
from .models import ApiError, Commit, CommitRef, FileAction, Tag
from .retry import RetryPolicy, is_transient

__all__ = [
    # client
    "ContentApi",
    "GitLabClient",
    "client_for",
    "ops_client_for",
    # mock
    "MockContentApi",
    # models
    "ApiError",
    "Commit",
    "CommitRef",
    "FileAction",
    "Tag",
    # retry
    "RetryPolicy",
    "is_transient",
]
