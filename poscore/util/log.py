import logging

from poscore.config import settings

FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=(level or settings.LOG_LEVEL).upper(), format=FORMAT)
    # keep SQL echo out of the application log
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
