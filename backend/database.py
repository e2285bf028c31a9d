# Document store connection

import datetime
import logging
import os
from datetime import timezone
from typing import Optional

import certifi
from dotenv import load_dotenv
from pymongo import MongoClient, ASCENDING
from pymongo.database import Database
from pymongo.errors import ConnectionFailure

from auth import get_password_hash
from models import Role

load_dotenv()

logger = logging.getLogger(__name__)

# --- Configuration ---
DATABASE_NAME = os.getenv("DATABASE_NAME", "plataforma_ondas")

client: Optional[MongoClient] = None
db: Optional[Database] = None


def _resolve_mongo_uri() -> str:
    """MONGO_URI if set, else ATLAS_URI when DEFAULT=ATLAS, else LOCAL_URI."""
    env_uri = os.getenv("MONGO_URI")
    if env_uri:
        logger.info("MONGO_URI resolved from ENV.")
        return env_uri

    local_uri = os.getenv("LOCAL_URI", "mongodb://127.0.0.1:27017/")
    atlas_uri = os.getenv("ATLAS_URI")
    default_mode = os.getenv("DEFAULT", "LOCAL").upper()

    if default_mode == "ATLAS" and atlas_uri:
        logger.info("MONGO_URI resolved from .env (DEFAULT=ATLAS).")
        return atlas_uri

    logger.info("MONGO_URI resolved from .env (DEFAULT=LOCAL).")
    return local_uri


def ensure_indexes(database: Database) -> None:
    database.users.create_index("email", unique=True, partialFilterExpression={"email": {"$type": "string"}})
    database.users.create_index("role")

    database.projects.create_index("ownerTeacherId")
    database.projects.create_index("members")
    database.projects.create_index("state")
    database.projects.create_index([("createdAt", ASCENDING)])


def connect_to_mongo() -> Database:
    """Establishes connection to MongoDB."""
    global client, db

    mongo_uri = _resolve_mongo_uri()
    logger.info("Connecting to MongoDB database '%s' ...", DATABASE_NAME)

    try:
        # Only use certifi for remote connections (Atlas)
        if "localhost" in mongo_uri or "127.0.0.1" in mongo_uri:
            client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000)
        else:
            client = MongoClient(mongo_uri, serverSelectionTimeoutMS=5000, tlsCAFile=certifi.where())

        client.admin.command("ping")
        db = client[DATABASE_NAME]
        logger.info("Connected to MongoDB database '%s'.", DATABASE_NAME)

        ensure_indexes(db)
        return db
    except ConnectionFailure as e:
        client = None
        db = None
        logger.error("Failed to connect to MongoDB: %s", e)
        raise ConnectionFailure(f"Could not connect to MongoDB at {mongo_uri}.")


def get_database() -> Database:
    if db is None:
        raise ConnectionFailure("Database is not connected. Check startup logs.")
    return db


def close_mongo_connection():
    global client, db
    if client:
        client.close()
        logger.info("MongoDB connection closed.")
    client = None
    db = None


def create_coordinator_user(database: Database = None) -> Optional[str]:
    """Seeds the first coordinator from COORDINATOR_EMAIL / COORDINATOR_PASSWORD."""
    database = database if database is not None else db
    email = os.getenv("COORDINATOR_EMAIL")
    password = os.getenv("COORDINATOR_PASSWORD")
    if database is None or not email or not password:
        return None

    existing = database.users.find_one({"email": email.lower()})
    if existing:
        return str(existing["_id"])

    result = database.users.insert_one({
        "email": email.lower(),
        "hashedPassword": get_password_hash(password),
        "role": Role.COORDINATOR.value,
        "profileComplete": True,
        "firstName": os.getenv("COORDINATOR_FIRST_NAME", "Coordinator"),
        "lastName": os.getenv("COORDINATOR_LAST_NAME", ""),
        "notifications": [],
        "createdAt": datetime.datetime.now(timezone.utc),
    })
    logger.info("Seeded coordinator account %s", email.lower())
    return str(result.inserted_id)
