# ngnasoro/database_init.py
import logging
from sqlalchemy_utils import database_exists, create_database
from ngnasoro.database import DATABASE_URL, Base, engine

logger = logging.getLogger("ngnasoro.database")


def ensure_database():
    if not database_exists(DATABASE_URL):
        create_database(DATABASE_URL)
        logger.info("Database created: %s", engine.url.render_as_string(hide_password=True))
    else:
        logger.info("Database already exists: %s", engine.url.render_as_string(hide_password=True))


def create_tables(bind=None):
    # Register every table on Base.metadata before creating them
    from ngnasoro.models import (  # noqa: F401
        account, audit, deposit, loan, notification, sfd, subsidy, transaction, user,
    )

    Base.metadata.create_all(bind=bind or engine)
