from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class User(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")

    login: str
    html_url: str | None = None
    avatar_url: str | None = None


class Label(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")

    name: str
    color: str | None = None


class SearchItem(BaseModel):
    """An issue or pull request returned by the search API.

    Only the fields used for ordering, deduplication and display are kept; `url` is the item's identity.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(extra="ignore")

    url: str = Field(description="The canonical API url of the item.")
    html_url: str | None = Field(default=None, description="The url of the item on github.com.")
    repository_url: str | None = Field(default=None, description="The API url of the repository the item belongs to.")
    id: int
    number: int
    title: str
    state: str
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None = None
    comments: int = 0
    labels: list[Label] = Field(default_factory=list)
    assignees: list[User] | None = None
    user: User | None = None
    pull_request: dict[str, Any] | None = None

    @property
    def is_pull_request(self) -> bool:
        return self.pull_request is not None

    @field_serializer("created_at", "updated_at", "closed_at")
    def serialize_datetime(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        return value.isoformat()


class SearchPage(BaseModel):
    """One page of search results."""

    items: list[SearchItem] = Field(description="The items on this page.")
    total_count: int = Field(description="The total number of results the search API reports for the query.")
