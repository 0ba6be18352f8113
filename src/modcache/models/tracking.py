import logging
from datetime import datetime
from enum import StrEnum

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

from modcache.utils.timestamps import utcnow

logger = logging.getLogger(__name__)


class EndorsementStatus(StrEnum):
    ENDORSED = "Endorsed"
    ABSTAINED = "Abstained"
    UNDECIDED = "Undecided"
    UNKNOWN = "Unknown"

    @classmethod
    def decode(cls, raw: str | None) -> "EndorsementStatus":
        """Match an upstream status ignoring case, falling back to UNKNOWN."""
        wanted = (raw or "").strip().lower()
        for status in cls:
            if status.value.lower() == wanted:
                return status
        logger.debug("Unrecognised endorsement status %r", raw)
        return cls.UNKNOWN


class Tracked(SQLModel, table=True):
    __tablename__ = "tracked"
    __table_args__ = (UniqueConstraint("domain_name", "mod_id", name="uq_tracked_game_mod"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int
    tracked_at: datetime = Field(default_factory=utcnow)


class Endorsement(SQLModel, table=True):
    __tablename__ = "endorsements"
    __table_args__ = (
        UniqueConstraint("domain_name", "mod_id", name="uq_endorsements_game_mod"),
    )

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    mod_id: int
    status: str = EndorsementStatus.UNDECIDED.value
    version: str | None = None
    endorsed_at: datetime | None = None

    @property
    def endorsement_status(self) -> EndorsementStatus:
        return EndorsementStatus.decode(self.status)
