from datetime import datetime

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from modcache.utils.timestamps import utcnow


class Game(SQLModel, table=True):
    __tablename__ = "games"

    domain_name: str = Field(primary_key=True)
    id: int | None = Field(default=None, unique=True, index=True)
    name: str = ""
    genre: str = ""
    approved_date: datetime | None = None
    authors: int = 0
    downloads: int = 0
    file_count: int = 0
    file_endorsements: int = 0
    file_views: int = 0
    mod_count: int = 0
    forum_url: str = ""
    nexusmods_url: str = ""
    etag: str | None = None
    created: datetime = Field(default_factory=utcnow)
    modified: datetime = Field(default_factory=utcnow)

    categories: list["Category"] = Relationship(back_populates="game", cascade_delete=True)

    @property
    def is_stub(self) -> bool:
        """Inserted only to satisfy a foreign key; never fetched."""
        return self.id is None


class Category(SQLModel, table=True):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("domain_name", "category_id", name="uq_categories_game"),)

    id: int | None = Field(default=None, primary_key=True)
    domain_name: str = Field(foreign_key="games.domain_name", index=True)
    category_id: int
    name: str = ""
    parent_category_id: int | None = None

    game: Game | None = Relationship(back_populates="categories")
