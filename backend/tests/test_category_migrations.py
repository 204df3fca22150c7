from datetime import date

from sqlalchemy import inspect
from sqlmodel import create_engine

from scoreboard import models, services
from scoreboard.database import create_db_and_tables


def test_defaults_seeded_once_in_order(session):
    svc = services.CategoryService(session)
    assert svc.seed_defaults() == 0
    cats = svc.list_categories()
    assert [(c.name, c.label) for c in cats] == services.DEFAULT_CATEGORIES


def test_missing_default_is_reseeded(session):
    svc = services.CategoryService(session)
    svc.category_repo.delete(svc.category_repo.get_by_name("OTHER"))
    assert svc.seed_defaults() == 1
    assert [c.name for c in svc.list_categories()][-1] == "OTHER"


def test_legacy_sleep_entries_move_to_nap(session, alice, category_ids):
    sleep = models.Category(name="SLEEP", display_name="Sleep")
    session.add(sleep)
    session.commit()
    session.refresh(sleep)
    entry = models.HabitEntry(user_id=alice.id, category_id=sleep.id, description="Night",
                              date=date(2024, 1, 1), duration=480)
    session.add(entry)
    session.commit()

    svc = services.CategoryService(session)
    assert svc.migrate_legacy_categories() == 1
    session.refresh(entry)
    assert entry.category_id == category_ids["NAP"]
    assert "SLEEP" not in [c.name for c in svc.list_categories()]
    assert svc.migrate_legacy_categories() == 0


def test_uncategorised_entries_backfilled_to_study(session, alice, category_ids):
    entry = models.HabitEntry(user_id=alice.id, category_id=None, description="Legacy",
                              date=date(2024, 1, 1), duration=10)
    session.add(entry)
    session.commit()
    result = services.CategoryService(session).run_startup_migrations()
    assert result == {"seeded": 0, "migrated": 0, "backfilled": 1}
    session.refresh(entry)
    assert entry.category_id == category_ids["STUDY"]


def test_legacy_entry_table_gains_optional_columns(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'legacy.db'}")
    with engine.begin() as conn:
        conn.exec_driver_sql(
            "CREATE TABLE habitentry ("
            "id INTEGER PRIMARY KEY, user_id INTEGER NOT NULL, category_id INTEGER, "
            "description VARCHAR NOT NULL, date DATE NOT NULL, duration INTEGER NOT NULL, "
            "score INTEGER, notes VARCHAR, created_at DATETIME)"
        )
        conn.exec_driver_sql(
            "INSERT INTO habitentry (user_id, description, date, duration) "
            "VALUES (1, 'Old run', '2024-01-02', 20)"
        )

    create_db_and_tables(engine)
    create_db_and_tables(engine)

    columns = {c["name"] for c in inspect(engine).get_columns("habitentry")}
    assert {"image_filename", "custom_label"} <= columns
    with engine.connect() as conn:
        rows = conn.exec_driver_sql("SELECT description, image_filename, custom_label FROM habitentry").all()
    assert rows == [("Old run", None, None)]
    engine.dispose()
