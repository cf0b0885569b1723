import os

from dotenv import load_dotenv
from sqlmodel import Session, create_engine

# Load environment variables from .env file
load_dotenv()

# Connects app to PostgreSQL database


def build_database_url() -> str:
    # A full URL wins (e.g. sqlite:///./attendance.db for local runs)
    database_url = os.getenv("DATABASE_URL")
    if database_url:
        return database_url

    db_user = os.getenv("DB_USER")
    db_password = os.getenv("DB_PASSWORD")
    db_name = os.getenv("DB_NAME")
    instance_connection_name = os.getenv("INSTANCE_CONNECTION_NAME")  # For Cloud SQL Proxy

    if instance_connection_name:
        required = ["DB_NAME", "DB_USER", "DB_PASSWORD", "INSTANCE_CONNECTION_NAME"]
        missing_vars = [var for var in required if not os.getenv(var)]
        if missing_vars:
            raise ValueError(f"Missing required environment variables for Cloud SQL (socket): {', '.join(missing_vars)}")
        return f"postgresql+psycopg2://{db_user}:{db_password}@/{db_name}?host=/cloudsql/{instance_connection_name}"

    required = ["DB_HOST", "DB_NAME", "DB_USER", "DB_PASSWORD"]
    missing_vars = [var for var in required if not os.getenv(var)]
    if missing_vars:
        raise ValueError(f"Missing required environment variables for TCP: {', '.join(missing_vars)}")
    db_host = os.getenv("DB_HOST")
    db_port = os.getenv("DB_PORT", "5432")  # Default PostgreSQL port
    return f"postgresql://{db_user}:{db_password}@{db_host}:{db_port}/{db_name}"


_engine = None


# The Wire / Link That Lets Us Pass Data from App -> db
def get_engine():
    global _engine
    if _engine is None:
        _engine = create_engine(build_database_url(), echo=False)
    return _engine


# Getter for this Wire, modified for FastAPI dependency injection
def get_session():
    with Session(get_engine()) as session:
        yield session
