"""Wire models for the external bookmark store API."""

from __future__ import annotations

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

_url_adapter = TypeAdapter(AnyUrl)


def _check_url(value: str | None) -> str | None:
    """Reject malformed URLs but keep the caller's spelling."""
    if value is None:
        return value
    try:
        _url_adapter.validate_python(value)
    except ValidationError:
        raise ValueError("Invalid URL format") from None
    return value


class BookmarkNode(BaseModel):
    """A bookmark or folder as returned by the store.

    Field names follow the store's own camelCase payload. Folders have no
    ``url``; leaves have a ``url`` and no ``children``. Instances are frozen so a
    cached tree can be shared between readers without copying.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    parentId: str | None = None
    title: str = ""
    url: str | None = None
    index: int | None = None
    dateAdded: int | None = None
    dateGroupModified: int | None = None
    children: tuple[BookmarkNode, ...] | None = None

    @property
    def is_folder(self) -> bool:
        return self.url is None

    def child_ids(self) -> list[str]:
        return [child.id for child in self.children or ()]


class MoveDestination(BaseModel):
    """Body of a move call; omitting ``index`` appends to the parent."""

    parentId: str
    index: int | None = Field(default=None, ge=0)


class NodeCreateRequest(BaseModel):
    """Request to create a bookmark (with ``url``) or a folder (without)."""

    parentId: str | None = None
    index: int | None = Field(default=None, ge=0)
    title: str
    url: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Title cannot be empty")
        return value

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        return _check_url(value)


class NodeUpdateRequest(BaseModel):
    """Request to rename a node or change a bookmark's URL."""

    title: str | None = None
    url: str | None = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("Title cannot be empty")
        return value

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        return _check_url(value)


class APIConfiguration(BaseModel):
    """Connection settings handed to the HTTP client."""

    base_url: str
    api_key: SecretStr
    timeout: float = 10.0
    max_retries: int = 5
    request_delay: float = 0.05
