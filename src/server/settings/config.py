import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

load_dotenv()

# Project root (the folder that holds src/ and knowledge/)
ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseModel):
    app_name: str = os.getenv("APP_NAME", "Renovation Quote Engine")
    environment: str = os.getenv("ENVIRONMENT", "dev")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./quotes.db")
    debug: bool = os.getenv("DEBUG", "0") == "1"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o")

    # Floor plan analyses waiting for /quotes/generate
    staging_ttl_seconds: float = float(os.getenv("STAGING_TTL_SECONDS", "900"))
    staging_max_entries: int = int(os.getenv("STAGING_MAX_ENTRIES", "128"))

    # Catalog CSVs and grade families live here
    knowledge_dir: str = os.getenv("KNOWLEDGE_DIR", str(ROOT / "knowledge"))
    seed_catalog: bool = os.getenv("SEED_CATALOG", "1") == "1"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
