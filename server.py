"""Entrypoint: load .env, configure logging and serve the FastAPI app."""

import logging
import os

import uvicorn
from dotenv import load_dotenv

# Load .env next to this file before any settings are read.
load_dotenv(os.path.join(os.path.dirname(__file__), ".env"))
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from app.dependencies import get_settings  # noqa: E402
from app.main import app  # noqa: E402


def main() -> None:
    settings = get_settings()
    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=settings.port)


if __name__ == "__main__":
    main()
