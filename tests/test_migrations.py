from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect


def test_upgrade_creates_expense_and_budget_tables(tmp_path) -> None:
    root = Path(__file__).resolve().parents[1]
    db_url = f"sqlite:///{tmp_path / 'migrated.db'}"
    cfg = Config()
    cfg.set_main_option("script_location", str(root / "alembic"))
    cfg.set_main_option("sqlalchemy.url", db_url)

    command.upgrade(cfg, "head")

    inspector = inspect(create_engine(db_url))
    assert {"expenses", "budgets"} <= set(inspector.get_table_names())
    uniques = inspector.get_unique_constraints("budgets")
    assert any(
        sorted(u["column_names"]) == ["category", "month", "owner"] for u in uniques
    )
