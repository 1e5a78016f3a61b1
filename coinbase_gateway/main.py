import logging
import os
from pathlib import Path
from dotenv import load_dotenv
from fastapi import FastAPI

from coinbase_gateway.routes import get_config, router
from coinbase_gateway.database import Base, engine
from coinbase_gateway import models  # noqa: F401  (registers tables)

# Force-load .env (Windows-safe)
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# Invalid settings fail here, not on the first request
get_config()

app = FastAPI(title="Coinbase Commerce Gateway")

app.include_router(router)

Base.metadata.create_all(bind=engine)
