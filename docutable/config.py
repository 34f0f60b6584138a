import os
import logging
from dataclasses import dataclass

from dotenv import load_dotenv

DEFAULT_MODEL = "gpt-5-mini"
DEFAULT_OUTPUT_DIR = "output_files"


@dataclass(frozen=True)
class Settings:
    openai_api_key: str | None
    model: str = DEFAULT_MODEL
    max_concurrency: int = 4
    output_dir: str = DEFAULT_OUTPUT_DIR


def load_settings() -> Settings:
    """Read settings from the environment, after loading a local .env file if present."""
    load_dotenv()

    env_val = os.getenv("MAX_CONCURRENCY")
    max_concurrency = 4
    if env_val is not None:
        try:
            max_concurrency = max(1, int(env_val))
        except ValueError:
            logging.warning(f"Ignoring invalid MAX_CONCURRENCY={env_val!r}, using {max_concurrency}")

    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY"),
        model=os.getenv("OPENAI_MODEL") or DEFAULT_MODEL,
        max_concurrency=max_concurrency,
        output_dir=os.getenv("OUTPUT_DIR") or DEFAULT_OUTPUT_DIR,
    )
