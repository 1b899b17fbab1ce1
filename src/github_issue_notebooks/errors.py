class GitHubIssueNotebooksError(Exception):
    """A base exception for GitHub Issue Notebooks."""

    msg: str

    def __init__(self, msg: str):
        self.msg = msg

    def __str__(self) -> str:
        return self.msg


class ConfigurationError(GitHubIssueNotebooksError):
    """An exception for invalid environment configuration."""


class NotebookFormatError(GitHubIssueNotebooksError):
    """An exception for when a notebook file cannot be decoded."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"Notebook {source} could not be read: {reason}")


class SearchFailedError(GitHubIssueNotebooksError):
    """An exception for when the search API rejects or fails a query."""

    query: str

    def __init__(self, query: str, cause: Exception):
        self.query = query
        super().__init__(f"Search for {query!r} failed: {cause}")
