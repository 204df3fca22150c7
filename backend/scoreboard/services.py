"""Business logic services used by HTTP controllers.

This module holds small service classes that coordinate repositories,
file storage and the dashboard arithmetic. Services are intentionally
thin: they perform validation, execute domain logic and persist
aggregates via repositories. Every entry operation is scoped to the
requesting user.
"""

from datetime import date, datetime, timedelta, timezone
from passlib.context import CryptContext
import jwt
import logging
from typing import Dict, List, Mapping, Optional
from . import models, repositories
from .config import settings
from .schemas import EntryForm
from .utils.storage import FileStorage, UploadRejected
from sqlmodel import Session

PWD_CTX = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
JWT_SECRET = settings.JWT_SECRET
JWT_ALGORITHM = settings.JWT_ALGORITHM
JWT_EXPIRE_HOURS = settings.JWT_EXPIRE_HOURS

# (name, display name) in the order categories are presented
DEFAULT_CATEGORIES = [
    ("STUDY", "Study"),
    ("EXERCISE", "Exercise"),
    ("NAP", "Nap"),
    ("NUTRITION", "Nutrition"),
    ("SOCIAL", "Social"),
    ("MINDFULNESS", "Mindfulness"),
    ("CREATIVE", "Creative"),
    ("READING", "Reading"),
    ("OTHER", "Other"),
]
LEGACY_CATEGORY_RENAMES = {"SLEEP": "NAP"}
FALLBACK_CATEGORY = "STUDY"
WEEK_WINDOW_DAYS = 7
CUSTOM_LABEL_MAX = 100

logger = logging.getLogger("scoreboard.services")


class EntryValidationError(ValueError):
    """Raised when a submitted entry form is invalid.

    `errors` maps form field names to user-facing messages.
    """
    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(errors.values()))
        self.errors = errors


def calculate_balance_score(points_by_category: Mapping[str, int]) -> int:
    """Score 0-100 for how evenly minutes are spread over active categories.

    Each active category earns `100 * (1 - min(deviation, 1))` points
    (truncated), where deviation is its relative distance from the mean of
    the active categories. The result is the integer mean of those points.
    """
    active = [p for p in points_by_category.values() if p and p > 0]
    total = sum(active)
    if total == 0:
        return 0
    mean = total / len(active)
    score = 0
    for points in active:
        deviation = abs(points - mean) / mean
        score += int(100 * (1 - min(deviation, 1)))
    return min(100, score // len(active))


class AuthService:
    """Authentication related operations (register + authenticate)."""
    def __init__(self, session: Session):
        self.session = session
        self.user_repo = repositories.UserRepository(session)

    def register(self, username: str, password: str) -> models.User:
        """Create a new user with a hashed password.

        Raises ValueError for blank credentials or a taken username.
        Returns the persisted `User` instance.
        """
        username = (username or "").strip()
        if not username:
            raise ValueError("Username is required")
        if not password:
            raise ValueError("Password is required")
        if self.user_repo.get_by_username(username):
            raise ValueError("Username already exists")
        hashed = PWD_CTX.hash(password)
        u = models.User(username=username, password_hash=hashed, role="USER")
        user = self.user_repo.create(u)
        logger.info("registered user %s (id=%s)", user.username, user.id)
        return user

    def authenticate(self, username: str, password: str):
        """Verify credentials and return a signed JWT token on success.

        Returns `None` if authentication fails.
        """
        user = self.user_repo.get_by_username((username or "").strip())
        if not user:
            return None
        if not PWD_CTX.verify(password or "", user.password_hash):
            return None
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRE_HOURS)
        payload = {"user_id": user.id, "username": user.username, "exp": int(expire.timestamp())}
        return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


class CategoryService:
    """Seed the default categories and repair legacy entry data."""
    def __init__(self, session: Session):
        self.session = session
        self.category_repo = repositories.CategoryRepository(session)
        self.entry_repo = repositories.EntryRepository(session)

    def list_categories(self) -> List[models.Category]:
        return self.category_repo.list_all()

    def seed_defaults(self) -> int:
        """Create any missing default category and return how many were added."""
        created = 0
        for name, display_name in DEFAULT_CATEGORIES:
            if self.category_repo.get_by_name(name) is None:
                self.category_repo.create(models.Category(name=name, display_name=display_name))
                created += 1
        if created:
            logger.info("seeded %d default categories", created)
        return created

    def migrate_legacy_categories(self) -> int:
        """Move entries of retired categories (SLEEP) onto their replacement."""
        migrated = 0
        for old_name, new_name in LEGACY_CATEGORY_RENAMES.items():
            old = self.category_repo.get_by_name(old_name)
            new = self.category_repo.get_by_name(new_name)
            if old is None or new is None:
                continue
            for entry in self.entry_repo.list_for_category(old.id):
                entry.category_id = new.id
                self.session.add(entry)
                migrated += 1
            self.session.commit()
            self.category_repo.delete(old)
            if migrated:
                logger.info("migrated %d entries from %s to %s", migrated, old_name, new_name)
        return migrated

    def backfill_missing_categories(self) -> int:
        """Attach entries that lost their category to the fallback category."""
        fallback = self.category_repo.get_by_name(FALLBACK_CATEGORY)
        if fallback is None:
            return 0
        fixed = 0
        for entry in self.entry_repo.list_without_category():
            try:
                entry.category_id = fallback.id
                self.entry_repo.save(entry)
                fixed += 1
            except Exception:
                self.session.rollback()
                logger.exception("error migrating entry %s", entry.id)
        if fixed:
            logger.info("backfilled %d entries onto %s", fixed, FALLBACK_CATEGORY)
        return fixed

    def run_startup_migrations(self) -> Dict[str, int]:
        """Seed categories then repair legacy rows; used at app start and by scripts."""
        return {
            "seeded": self.seed_defaults(),
            "migrated": self.migrate_legacy_categories(),
            "backfilled": self.backfill_missing_categories(),
        }


class EntryService:
    """CRUD, filtering and dashboard aggregates for a user's habit entries."""
    def __init__(self, session: Session, storage: Optional[FileStorage] = None):
        self.session = session
        self.storage = storage
        self.entry_repo = repositories.EntryRepository(session)
        self.category_repo = repositories.CategoryRepository(session)

    # CRUD

    def list_entries(self, user: models.User) -> List[models.HabitEntry]:
        return self.entry_repo.list_for_user(user.id)

    def get_owned_entry(self, user: models.User, entry_id: int) -> Optional[models.HabitEntry]:
        """Return the entry when it exists and belongs to `user`, else `None`."""
        entry = self.entry_repo.get(entry_id)
        if entry is None or entry.user_id != user.id:
            return None
        return entry

    def validate(self, form: EntryForm) -> Dict[str, str]:
        """Return a mapping of field name to error message (empty when valid)."""
        errors = {}
        if form.category_id is None or self.category_repo.get(form.category_id) is None:
            errors["category_id"] = "Category is required"
        if not form.description or not form.description.strip():
            errors["description"] = "Description is required"
        if form.duration is None or form.duration < 1:
            errors["duration"] = "Duration must be at least 1 minute"
        if "date" in form.unparsed:
            errors["date"] = "Date must be a valid date (YYYY-MM-DD)"
        if "score" in form.unparsed or (form.score is not None and not 1 <= form.score <= 10):
            errors["score"] = "Score must be between 1 and 10"
        if form.custom_label and len(form.custom_label) > CUSTOM_LABEL_MAX:
            errors["custom_label"] = f"Custom label must be at most {CUSTOM_LABEL_MAX} characters"
        return errors

    def _store_image(self, image) -> Optional[str]:
        if self.storage is None:
            return None
        try:
            return self.storage.store(image)
        except UploadRejected as e:
            raise EntryValidationError({"image": str(e)})

    def _apply(self, entry: models.HabitEntry, form: EntryForm, fallback_date: date) -> None:
        entry.category_id = form.category_id
        entry.description = form.description
        entry.date = form.date or fallback_date
        entry.duration = form.duration
        entry.score = form.score
        entry.notes = form.notes
        entry.custom_label = form.custom_label

    def _save_with_image(self, entry: models.HabitEntry, new_image: Optional[str]) -> models.HabitEntry:
        try:
            return self.entry_repo.save(entry)
        except Exception:
            self.session.rollback()
            logger.exception("failed to save entry for user %s", entry.user_id)
            if new_image and self.storage is not None:
                self.storage.delete(new_image)
            raise

    def create_entry(self, user: models.User, form: EntryForm, image=None) -> models.HabitEntry:
        """Validate and persist a new entry owned by `user`.

        Raises `EntryValidationError` before anything is written when the
        form or the image is invalid.
        """
        errors = self.validate(form)
        if errors:
            raise EntryValidationError(errors)
        filename = self._store_image(image)
        entry = models.HabitEntry(user_id=user.id)
        self._apply(entry, form, date.today())
        entry.image_filename = filename
        entry = self._save_with_image(entry, filename)
        logger.info("user %s created entry %s", user.id, entry.id)
        return entry

    def update_entry(self, user: models.User, entry_id: int, form: EntryForm, image=None) -> Optional[models.HabitEntry]:
        """Update an entry owned by `user`; returns `None` if it is not theirs.

        A new image replaces the previous one, otherwise the stored image is
        kept. Ownership never changes.
        """
        entry = self.get_owned_entry(user, entry_id)
        if entry is None:
            return None
        errors = self.validate(form)
        if errors:
            raise EntryValidationError(errors)
        filename = self._store_image(image)
        previous_image = entry.image_filename
        self._apply(entry, form, entry.date)
        if filename:
            entry.image_filename = filename
        entry = self._save_with_image(entry, filename)
        if filename and previous_image and self.storage is not None:
            self.storage.delete(previous_image)
        logger.info("user %s updated entry %s", user.id, entry.id)
        return entry

    def delete_entry(self, user: models.User, entry_id: int) -> bool:
        """Delete an entry when it belongs to `user`; returns whether it was removed."""
        entry = self.get_owned_entry(user, entry_id)
        if entry is None:
            logger.warning("user %s attempted to delete entry %s they do not own", user.id, entry_id)
            return False
        image = entry.image_filename
        self.entry_repo.delete(entry)
        if self.storage is not None:
            self.storage.delete(image)
        logger.info("user %s deleted entry %s", user.id, entry_id)
        return True

    # Filtering

    def filter_entries(self, user: models.User, category_id: Optional[int] = None,
                       start: Optional[date] = None, end: Optional[date] = None) -> List[models.HabitEntry]:
        return self.entry_repo.filter_for_user(user.id, category_id=category_id, start=start, end=end)

    def entries_between(self, user: models.User, start: date, end: date) -> List[models.HabitEntry]:
        return self.entry_repo.filter_for_user(user.id, start=start, end=end)

    def entries_for_date(self, user: models.User, day: date) -> List[models.HabitEntry]:
        return self.entry_repo.list_for_user_on_date(user.id, day)

    def today_entries(self, user: models.User, today: Optional[date] = None) -> List[models.HabitEntry]:
        return self.entries_for_date(user, today or date.today())

    def today_entry_count(self, user: models.User, today: Optional[date] = None) -> int:
        return self.entry_repo.count_for_user_on_date(user.id, today or date.today())

    def today_average_score(self, user: models.User, today: Optional[date] = None) -> Optional[float]:
        return self.entry_repo.average_score_for_user_on_date(user.id, today or date.today())

    # Analytics

    def today_total_points(self, user: models.User, today: Optional[date] = None) -> int:
        return sum(e.duration or 0 for e in self.today_entries(user, today))

    def _week_entries(self, user: models.User, today: Optional[date]) -> List[models.HabitEntry]:
        today = today or date.today()
        return self.entries_between(user, today - timedelta(days=WEEK_WINDOW_DAYS), today)

    def week_total_points(self, user: models.User, today: Optional[date] = None) -> int:
        return sum(e.duration or 0 for e in self._week_entries(user, today))

    def points_by_category_for_week(self, user: models.User, today: Optional[date] = None) -> Dict[str, int]:
        """Minutes per category name over the week window; inactive categories are 0."""
        categories = self.category_repo.list_all()
        by_id = {c.id: c.name for c in categories}
        points = {c.name: 0 for c in categories}
        for entry in self._week_entries(user, today):
            name = by_id.get(entry.category_id)
            if name is not None:
                points[name] += entry.duration or 0
        return points

    def weekly_stats(self, user: models.User, today: Optional[date] = None) -> Dict[str, int]:
        """Same totals as `points_by_category_for_week` keyed by display name."""
        categories = self.category_repo.list_all()
        by_name = self.points_by_category_for_week(user, today)
        return {c.label: by_name.get(c.name, 0) for c in categories}

    def balance_score_for_week(self, user: models.User, today: Optional[date] = None) -> int:
        return calculate_balance_score(self.points_by_category_for_week(user, today))
