from sqlmodel import Field, SQLModel


class NexusUser(SQLModel, table=True):
    __tablename__ = "users"

    member_id: int = Field(primary_key=True)
    member_group_id: int | None = None
    name: str = ""
