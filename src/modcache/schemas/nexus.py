"""Nexus API payloads and service result summaries."""

from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class NexusKeyResult(BaseModel):
    valid: bool
    username: str = ""
    user_id: int | None = None
    is_premium: bool = False
    is_supporter: bool = False
    error: str = ""


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CategoryPayload(_Payload):
    category_id: int
    name: str = ""
    parent_category_id: int | None = None

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "CategoryPayload":
        # parent_category is `false` for a game's top-level category
        parent = raw.get("parent_category")
        if isinstance(parent, bool) or parent is None:
            parent = None
        return cls(
            category_id=raw["category_id"],
            name=raw.get("name") or "",
            parent_category_id=parent,
        )


class GamePayload(_Payload):
    id: int
    domain_name: str
    name: str = ""
    genre: str | None = None
    approved_date: int | None = None
    authors: int = 0
    downloads: int = 0
    file_count: int = 0
    file_endorsements: int = 0
    file_views: int = 0
    mods: int = 0
    forum_url: str | None = None
    nexusmods_url: str | None = None
    categories: list[CategoryPayload] = []

    @field_validator("categories", mode="before")
    @classmethod
    def _parse_categories(cls, value: Any) -> Any:
        if not value:
            return []
        return [
            CategoryPayload.from_api(c) if isinstance(c, dict) else c
            for c in value
        ]


class ModAuthorPayload(_Payload):
    member_id: int
    member_group_id: int | None = None
    name: str = ""


class ModEndorsementPayload(_Payload):
    endorse_status: str = "Undecided"
    timestamp: int | None = None
    version: str | None = None


class ModPayload(_Payload):
    """Full mod record from ``/v1/games/{game}/mods/{id}.json``.

    Removed and wastebinned mods come back with most fields null, so
    everything but the identity is optional.
    """

    domain_name: str
    mod_id: int
    uid: int | None = None
    game_id: int | None = None
    category_id: int | None = None
    name: str | None = None
    version: str | None = None
    summary: str | None = None
    description: str | None = None
    picture_url: str | None = None
    status: str | None = None
    available: bool = True
    allow_rating: bool = False
    contains_adult_content: bool = False
    author: str | None = None
    uploaded_by: str | None = None
    uploaded_users_profile_url: str | None = None
    user: ModAuthorPayload | None = None
    endorsement: ModEndorsementPayload | None = None
    endorsement_count: int = 0
    mod_downloads: int = 0
    created_timestamp: int | None = None
    updated_timestamp: int | None = None


class TrackedRefPayload(_Payload):
    domain_name: str
    mod_id: int


class EndorsementPayload(_Payload):
    domain_name: str
    mod_id: int
    status: str
    version: str | None = None
    date: int | None = None


class FileInfoPayload(_Payload):
    file_id: int
    name: str = ""
    version: str | None = None
    mod_version: str | None = None
    category_id: int | None = None
    category_name: str | None = None
    is_primary: bool = False
    file_name: str = ""
    size_kb: int = 0
    size_in_bytes: int | None = None
    uploaded_timestamp: int | None = None
    description: str | None = None
    changelog_html: str | None = None
    external_virus_scan_url: str | None = None
    content_preview_link: str | None = None


class FileUpdatePayload(_Payload):
    old_file_id: int
    new_file_id: int
    old_file_name: str = ""
    new_file_name: str = ""
    uploaded_timestamp: int | None = None


class FilesPayload(_Payload):
    """Body of `/v1/games/{game}/mods/{id}/files.json`; it carries no game or mod id."""

    files: list[FileInfoPayload] = []
    file_updates: list[FileUpdatePayload] = []


class TrackedSyncResult(BaseModel):
    unchanged: bool
    games: int = 0
    total_tracked: int = 0
    added: int = 0
    removed: int = 0


class EndorsementSyncResult(BaseModel):
    unchanged: bool
    total: int = 0
    removed: int = 0


class PopulateResult(BaseModel):
    game: str | None = None
    processed: int = 0
    skipped: int = 0
    remaining: int = 0
    aborted: bool = False
    abort_reason: str | None = None
    requests: int = 0
    unchanged: int = 0


class ModActionResult(BaseModel):
    domain_name: str
    mod_id: int
    success: bool
    message: str = ""
    status: str | None = None


class UntrackRemovedResult(BaseModel):
    untracked: list[int] = []
    failed: list[ModActionResult] = []
