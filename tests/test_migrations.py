"""The Alembic migration builds the same ``payments`` table as the ORM model."""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from db import PaymentRow
from db.client import get_engine
from payment_sync.local_store import LocalPaymentStore

from tests.helpers.fakes import make_payment

_ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def _alembic_config(url: str) -> Config:
    # No ini file: keeps alembic from reconfiguring logging for the test run.
    cfg = Config()
    cfg.set_main_option("script_location", str(_ALEMBIC_DIR))
    cfg.set_main_option("sqlalchemy.url", url)
    return cfg


def test_upgrade_matches_orm_and_downgrade_drops(tmp_path: Path) -> None:
    url = f"sqlite+pysqlite:///{tmp_path / 'migrated.db'}"
    cfg = _alembic_config(url)

    command.upgrade(cfg, "head")

    insp = inspect(get_engine(database_url=url))
    reflected = {c["name"]: c for c in insp.get_columns("payments")}
    model = {c.name: c for c in PaymentRow.__table__.columns}
    assert set(reflected) == set(model)
    for name, column in model.items():
        assert reflected[name]["nullable"] == column.nullable, name
    assert {ix["name"] for ix in insp.get_indexes("payments")} == {
        ix.name for ix in PaymentRow.__table__.indexes
    }
    assert insp.get_pk_constraint("payments")["constrained_columns"] == ["id"]

    # The migrated schema is usable by the store without create_all.
    store = LocalPaymentStore(database_url=url, create=False)
    p = make_payment()
    store.upsert(p)
    assert store.fetch_by_id(p.id) == p

    command.downgrade(cfg, "base")
    assert "payments" not in inspect(get_engine(database_url=url)).get_table_names()
