from datetime import datetime

from pydantic import BaseModel, ConfigDict

from modcache.models.tracking import EndorsementStatus


class CategoryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category_id: int
    name: str
    parent_category_id: int | None


class GameOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain_name: str
    id: int | None
    name: str
    genre: str
    approved_date: datetime | None
    authors: int
    downloads: int
    file_count: int
    file_endorsements: int
    file_views: int
    mod_count: int
    forum_url: str
    nexusmods_url: str
    categories: list[CategoryOut] = []


class ModOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain_name: str
    mod_id: int
    name: str
    version: str
    summary: str
    author: str
    uploaded_by: str
    status: str
    available: bool
    category_id: int | None
    endorsement_count: int
    picture_url: str | None
    nexus_created: datetime | None
    nexus_updated: datetime | None
    deleted: datetime | None
    url: str


class ModDetailOut(ModOut):
    uid: int | None
    game_id: int | None
    description: str
    allow_rating: bool
    contains_adult_content: bool
    uploaded_users_profile_url: str
    user_id: int | None
    mod_downloads: int
    created: datetime
    modified: datetime


class TrackedModOut(BaseModel):
    domain_name: str
    mod_id: int
    cached: bool
    name: str = ""
    status: str | None = None
    category_id: int | None = None


class TrackedGameSummary(BaseModel):
    domain_name: str
    tracked: int
    cached: int


class EndorsementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    domain_name: str
    mod_id: int
    status: str
    endorsement_status: EndorsementStatus
    version: str | None
    endorsed_at: datetime | None


class ChangelogOut(BaseModel):
    domain_name: str
    mod_id: int
    versions: dict[str, list[str]]


class FileOut(BaseModel):
    file_id: int
    name: str
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


class FileUpdateOut(BaseModel):
    old_file_id: int
    new_file_id: int
    old_file_name: str = ""
    new_file_name: str = ""
    uploaded_timestamp: int | None = None


class ModFilesOut(BaseModel):
    domain_name: str
    mod_id: int
    files: list[FileOut]
    file_updates: list[FileUpdateOut]
