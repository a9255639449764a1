import os
from enum import Enum
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class MentorPolicy(str, Enum):
    """What happens to a room when its mentor leaves."""

    TEARDOWN = "teardown"
    PROMOTE = "promote"


class Settings(BaseModel):
    """Configuration for the code room server."""

    # Server settings
    host: str = "0.0.0.0"
    port: int = 4000
    cors_origins: List[str] = ["*"]

    # Content store
    database_url: str = "sqlite:///./codeblocks.db"

    # Room behaviour
    mentor_policy: MentorPolicy = MentorPolicy.TEARDOWN
    track_student_count: bool = True

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from environment variables."""
        return cls(
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "4000")),
            cors_origins=os.getenv("CORS_ORIGINS", "*").split(","),
            database_url=os.getenv("DATABASE_URL", "sqlite:///./codeblocks.db"),
            mentor_policy=os.getenv("MENTOR_POLICY", "teardown").lower(),
            track_student_count=os.getenv("TRACK_STUDENT_COUNT", "true").lower() == "true",
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Read a .env file into the environment, then build settings from it."""
    load_dotenv(env_file)
    return Settings.from_env()


# Global settings instance
settings = load_settings()
