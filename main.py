import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import SQLModel

import models.attendance_event  # noqa: F401  (registers tables with SQLModel)
import models.authorized_location  # noqa: F401
from api.attendance_routes import router as attendance_router
from api.location_routes import router as location_router
from core.config import get_settings
from db.session import get_engine

# Configure logging
logging.basicConfig(
    level=os.getenv("APP_LOG_LEVEL", "info").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)

# This file is the control center of the whole application

# Load environment variables from .env file, if it exists
load_dotenv()

# Default values can be provided if the env var is not set
DEV_DOMAIN = os.getenv("DEV_DOMAIN", "http://localhost:5173")
PRODUCTION_DOMAIN = os.getenv("PRODUCTION_DOMAIN")

# Construct the list of allowed origins, always including both dev and production
allowed_origins_list = [
    DEV_DOMAIN,
    PRODUCTION_DOMAIN,
    "http://localhost:3000",  # Additional fallback for React dev
    "http://127.0.0.1:5173",  # Additional fallback for Vite dev
]

# Remove any None values and duplicates
allowed_origins_list = list(set([origin for origin in allowed_origins_list if origin]))

logger.info(f"CORS: Allowing origins: {allowed_origins_list}")


# When We Start, Validate Settings and Create the DB Tables if they don't exist
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail fast on a missing accuracy ceiling rather than on the first clock-in
    get_settings()
    SQLModel.metadata.create_all(get_engine())
    yield


# Starts Fast API Up; Init
app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Connects Routes From attendance_routes (clock-in / out) to main app
app.include_router(attendance_router, prefix="/attendance", tags=["Attendance"])
app.include_router(location_router, prefix="/locations", tags=["Locations", "Geofence"])
