import logging

from database import engine, Base, SessionLocal
from models import CodeBlock
from logging_config import setup_logging

logger = logging.getLogger(__name__)

DEFAULT_CODE_BLOCKS = [
    {
        "title": "Async case",
        "initial_template": "async function fetchData(url) {\n  // fetch url and return the parsed JSON\n}",
        "solution": "async function fetchData(url) {\n  const res = await fetch(url);\n  return res.json();\n}",
    },
    {
        "title": "Closures",
        "initial_template": "function makeCounter() {\n  // return a function that counts up from 1\n}",
        "solution": "function makeCounter() {\n  let count = 0;\n  return () => ++count;\n}",
    },
    {
        "title": "Promises",
        "initial_template": "function wait(ms) {\n  // resolve after ms milliseconds\n}",
        "solution": "function wait(ms) {\n  return new Promise((resolve) => setTimeout(resolve, ms));\n}",
    },
    {
        "title": "Event loop",
        "initial_template": "function add(a, b) {\n  \n}",
        "solution": "function add(a, b) {\n  return a+b;\n}",
    },
]

def migrate(bind=engine):
    """Create all tables in the database"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=bind)
    logger.info("Database tables created successfully!")

def seed(session_factory=SessionLocal):
    """Insert the default code blocks when the table is empty"""
    db = session_factory()
    try:
        if db.query(CodeBlock).count() > 0:
            logger.info("Code blocks already present, skipping seed")
            return 0
        for block in DEFAULT_CODE_BLOCKS:
            db.add(CodeBlock(**block))
        db.commit()
        logger.info(f"Seeded {len(DEFAULT_CODE_BLOCKS)} code blocks")
        return len(DEFAULT_CODE_BLOCKS)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

if __name__ == "__main__":
    setup_logging()
    migrate()
    seed()
