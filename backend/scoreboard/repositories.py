"""Repository classes encapsulating database operations.

Each repository is small and focused on a single aggregate (users,
categories, habit entries). Repositories return SQLModel objects and
perform commits/refreshes where appropriate. Every entry query takes the
owning user id so callers cannot accidentally read across accounts.
"""

from datetime import date
from typing import List, Optional
from sqlmodel import Session, select
from sqlalchemy import func
from . import models


class UserRepository:
    """CRUD operations for `User` objects."""
    def __init__(self, session: Session):
        self.session = session

    def create(self, user: models.User) -> models.User:
        """Persist a new user and return the managed instance."""
        self.session.add(user)
        self.session.commit()
        self.session.refresh(user)
        return user

    def get_by_username(self, username: str) -> Optional[models.User]:
        """Return a `User` by username or `None` if not found."""
        stmt = select(models.User).where(models.User.username == username)
        return self.session.exec(stmt).first()

    def get(self, user_id: int) -> Optional[models.User]:
        """Get a `User` by primary key."""
        return self.session.get(models.User, user_id)


class CategoryRepository:
    """Lookups and seeding helpers for `Category` rows."""
    def __init__(self, session: Session):
        self.session = session

    def list_all(self) -> List[models.Category]:
        """Return every category in insertion (seed) order."""
        stmt = select(models.Category).order_by(models.Category.id)
        return self.session.exec(stmt).all()

    def get(self, category_id: int) -> Optional[models.Category]:
        return self.session.get(models.Category, category_id)

    def get_by_name(self, name: str) -> Optional[models.Category]:
        stmt = select(models.Category).where(models.Category.name == name)
        return self.session.exec(stmt).first()

    def create(self, category: models.Category) -> models.Category:
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category: models.Category) -> None:
        self.session.delete(category)
        self.session.commit()


class EntryRepository:
    """Queries and persistence for `HabitEntry` rows."""
    def __init__(self, session: Session):
        self.session = session

    def _most_recent_first(self, stmt):
        return stmt.order_by(models.HabitEntry.date.desc(), models.HabitEntry.id.desc())

    def save(self, entry: models.HabitEntry) -> models.HabitEntry:
        """Insert or update an entry and return the refreshed instance."""
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def get(self, entry_id: int) -> Optional[models.HabitEntry]:
        return self.session.get(models.HabitEntry, entry_id)

    def delete(self, entry: models.HabitEntry) -> None:
        self.session.delete(entry)
        self.session.commit()

    def list_for_user(self, user_id: int) -> List[models.HabitEntry]:
        """All entries of a user, most recent first."""
        stmt = select(models.HabitEntry).where(models.HabitEntry.user_id == user_id)
        return self.session.exec(self._most_recent_first(stmt)).all()

    def filter_for_user(self, user_id: int, category_id: Optional[int] = None,
                        start: Optional[date] = None, end: Optional[date] = None) -> List[models.HabitEntry]:
        """Entries of a user matching every predicate that is provided.

        `start` and `end` are inclusive bounds on the entry date.
        """
        stmt = select(models.HabitEntry).where(models.HabitEntry.user_id == user_id)
        if category_id is not None:
            stmt = stmt.where(models.HabitEntry.category_id == category_id)
        if start is not None:
            stmt = stmt.where(models.HabitEntry.date >= start)
        if end is not None:
            stmt = stmt.where(models.HabitEntry.date <= end)
        return self.session.exec(self._most_recent_first(stmt)).all()

    def list_for_user_on_date(self, user_id: int, day: date) -> List[models.HabitEntry]:
        """Entries of a user on `day`, ordered by category name then description."""
        stmt = (
            select(models.HabitEntry)
            .join(models.Category, models.Category.id == models.HabitEntry.category_id, isouter=True)
            .where(models.HabitEntry.user_id == user_id, models.HabitEntry.date == day)
            .order_by(models.Category.name, models.HabitEntry.description)
        )
        return self.session.exec(stmt).all()

    def count_for_user_on_date(self, user_id: int, day: date) -> int:
        stmt = select(func.count(models.HabitEntry.id)).where(
            models.HabitEntry.user_id == user_id,
            models.HabitEntry.date == day
        )
        return self.session.exec(stmt).one()

    def average_score_for_user_on_date(self, user_id: int, day: date) -> Optional[float]:
        """Mean of the non-null scores on `day`, or `None` when nothing is scored."""
        stmt = select(func.avg(models.HabitEntry.score)).where(
            models.HabitEntry.user_id == user_id,
            models.HabitEntry.date == day,
            models.HabitEntry.score.is_not(None)
        )
        avg = self.session.exec(stmt).one()
        return float(avg) if avg is not None else None

    def list_for_category(self, category_id: int) -> List[models.HabitEntry]:
        """Entries of any user in the given category (used by data migrations)."""
        stmt = select(models.HabitEntry).where(models.HabitEntry.category_id == category_id)
        return self.session.exec(stmt).all()

    def list_without_category(self) -> List[models.HabitEntry]:
        stmt = select(models.HabitEntry).where(models.HabitEntry.category_id.is_(None))
        return self.session.exec(stmt).all()
