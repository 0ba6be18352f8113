import json
import logging
from datetime import datetime
from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from modcache.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

NEXUS_WEB = "https://www.nexusmods.com"


class ModStatus(StrEnum):
    PUBLISHED = "published"
    NOT_PUBLISHED = "not_published"
    HIDDEN = "hidden"
    REMOVED = "removed"
    WASTEBINNED = "wastebinned"
    UNDER_MODERATION = "under_moderation"
    UNKNOWN = "unknown"

    @classmethod
    def decode(cls, raw: str | None) -> "ModStatus":
        """Map an upstream status string, falling back to UNKNOWN.

        The raw string is kept in ``Mod.status`` so nothing is lost when the
        Nexus introduces a status we do not know yet.
        """
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            logger.debug("Unrecognised mod status %r", raw)
            return cls.UNKNOWN


class Mod(SQLModel, table=True):
    __tablename__ = "mods"
    __table_args__ = (UniqueConstraint("domain_name", "mod_id", name="uq_mods_game_mod"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int = Field(index=True)
    etag: str | None = None

    uid: int | None = None
    game_id: int | None = None
    category_id: int | None = None
    name: str = ""
    version: str = ""
    summary: str = ""
    description: str = ""
    picture_url: str | None = None
    status: str = ModStatus.PUBLISHED.value
    available: bool = True
    allow_rating: bool = False
    contains_adult_content: bool = False
    author: str = ""
    uploaded_by: str = ""
    uploaded_users_profile_url: str = ""
    user_id: int | None = Field(default=None, index=True)
    endorsement_count: int = 0
    mod_downloads: int = 0
    nexus_created: datetime | None = None
    nexus_updated: datetime | None = None

    # local bookkeeping, independent of the Nexus timestamps
    created: datetime = Field(default_factory=utcnow)
    modified: datetime = Field(default_factory=utcnow)
    deleted: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.deleted is None

    @property
    def mod_status(self) -> ModStatus:
        return ModStatus.decode(self.status)

    @property
    def url(self) -> str:
        return f"{NEXUS_WEB}/{self.domain_name}/mods/{self.mod_id}"


# Fields replaced wholesale by a changed fetch.
MOD_PAYLOAD_FIELDS: tuple[str, ...] = (
    "uid",
    "game_id",
    "category_id",
    "name",
    "version",
    "summary",
    "description",
    "picture_url",
    "status",
    "available",
    "allow_rating",
    "contains_adult_content",
    "author",
    "uploaded_by",
    "uploaded_users_profile_url",
    "user_id",
    "endorsement_count",
    "mod_downloads",
    "nexus_created",
    "nexus_updated",
)


class ModCheck(SQLModel, table=True):
    """When a mod was last confirmed against the Nexus, changed or not."""

    __tablename__ = "mod_checks"
    __table_args__ = (UniqueConstraint("domain_name", "mod_id", name="uq_mod_checks_game_mod"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int
    checked_at: datetime = Field(default_factory=utcnow)


class ModChangelog(SQLModel, table=True):
    __tablename__ = "changelogs"
    __table_args__ = (UniqueConstraint("domain_name", "mod_id", name="uq_changelogs_game_mod"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int
    versions_json: str = "{}"
    etag: str | None = None
    modified: datetime = Field(default_factory=utcnow)

    @property
    def versions(self) -> dict[str, list[str]]:
        return json.loads(self.versions_json or "{}")


class ModFiles(SQLModel, table=True):
    """The file listing of a mod, kept as the Nexus returned it."""

    __tablename__ = "mod_files"
    __table_args__ = (UniqueConstraint("domain_name", "mod_id", name="uq_mod_files_game_mod"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int
    files_json: str = "[]"
    file_updates_json: str = "[]"
    etag: str | None = None
    modified: datetime = Field(default_factory=utcnow)

    @property
    def files(self) -> list[dict]:
        return json.loads(self.files_json or "[]")

    @property
    def file_updates(self) -> list[dict]:
        return json.loads(self.file_updates_json or "[]")

    def primary_file(self) -> dict | None:
        return next((f for f in self.files if f.get("is_primary")), None)

    def file_by_id(self, file_id: int) -> dict | None:
        return next((f for f in self.files if f.get("file_id") == file_id), None)
