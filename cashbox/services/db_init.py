# cashbox/services/db_init.py
from __future__ import annotations

from typing import Optional

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from cashbox.config import settings as app_settings
from cashbox.logging_config import get_logger
from cashbox.models.base import Base, engine as default_engine, SessionLocal
# Register all models (side-effect import)
import cashbox.models.cashbook  # noqa: F401
import cashbox.models.entities  # noqa: F401
import cashbox.models.user  # noqa: F401
from cashbox.services.auth import seed_users_if_empty
from cashbox.services.money_boxes import MoneyBoxService

logger = get_logger("services.db_init")


def ensure_daily_money_box(session_factory: sessionmaker) -> None:
    """The till transfer endpoints need the shared daily box to exist."""
    with session_factory() as db:
        svc = MoneyBoxService(db)
        if svc.get_box_by_name(app_settings.DAILY_MONEY_BOX_NAME) is None:
            svc.create_box(app_settings.DAILY_MONEY_BOX_NAME)
            db.commit()


def init_db(dev_seed: bool = True, *, bind: Optional[Engine] = None,
            session_factory: Optional[sessionmaker] = None) -> None:
    """
    Creates the tables, the daily money box and (optionally) demo users.
    Called from main.py on startup and by the test fixtures.
    """
    eng = bind or default_engine
    factory = session_factory or SessionLocal
    Base.metadata.create_all(bind=eng)
    ensure_daily_money_box(factory)

    if dev_seed:
        with factory() as db:
            seed_users_if_empty(db)
    logger.info("database_initialised", extra={"url": eng.url.render_as_string(hide_password=True)})
