"""SQLModel data models.

This module defines the application's database tables using SQLModel.
Each class maps to a table and uses relationships where appropriate.
"""

from typing import Optional
from sqlmodel import SQLModel, Field, Relationship
import datetime as dt
from typing import List


class User(SQLModel, table=True):
    """A registered user.

    Fields:
    - `username`: unique login name
    - `password_hash`: hashed password string (never store plaintext)
    - `role`: authority name, `USER` for self-registered accounts
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True)
    password_hash: str
    role: str = "USER"
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))


class Category(SQLModel, table=True):
    """Kind of activity an entry belongs to (Study, Exercise, ...).

    `name` is the stable upper-case key, `display_name` is shown in pages.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True, nullable=False, unique=True)
    display_name: Optional[str] = None
    entries: List['HabitEntry'] = Relationship(back_populates='category')

    @property
    def label(self) -> str:
        return self.display_name or self.name


class HabitEntry(SQLModel, table=True):
    """A single activity logged by a user.

    `duration` is in minutes and doubles as the entry's points. `category_id`
    is nullable at the column level only so legacy rows can be backfilled;
    the service layer never persists an entry without a category.
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key='user.id', index=True)
    category_id: Optional[int] = Field(default=None, foreign_key='category.id', index=True)
    description: str
    date: dt.date = Field(index=True)
    duration: int
    score: Optional[int] = None
    notes: Optional[str] = None
    image_filename: Optional[str] = Field(default=None, max_length=255)
    custom_label: Optional[str] = Field(default=None, max_length=100)
    created_at: dt.datetime = Field(default_factory=lambda: dt.datetime.now(dt.timezone.utc))
    category: Optional[Category] = Relationship(back_populates='entries')

    @property
    def category_name(self) -> Optional[str]:
        return self.category.name if self.category else None
