import logging

from tutor_app.db.session import engine
from tutor_app.db.base import Base
import tutor_app.models  # noqa: F401 - register all models with Base

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("create_tables")

if __name__ == "__main__":
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("All tables created: %s", ", ".join(sorted(Base.metadata.tables)))
