import json
import logging
import os
from functools import lru_cache

import firebase_admin
from dotenv import load_dotenv
from firebase_admin import auth as firebase_auth
from firebase_admin import credentials, firestore

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


def get_storage_bucket_name() -> str:
    bucket = os.getenv("FIREBASE_STORAGE_BUCKET")
    if not bucket:
        raise ValueError("Missing required environment variable: FIREBASE_STORAGE_BUCKET")
    return bucket


def initialize_firebase():
    """Initialize Firebase Admin SDK once, with production-ready credential handling"""

    if firebase_admin._apps:
        return

    options = {"storageBucket": get_storage_bucket_name()}

    # Method 1: Service Account Key from Environment Variable (Recommended for production)
    service_account_key_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY")
    if service_account_key_json:
        try:
            service_account_info = json.loads(service_account_key_json)
            cred = credentials.Certificate(service_account_info)
            firebase_admin.initialize_app(cred, options)
            logger.info("Firebase Admin SDK initialized with Service Account Key from environment variable.")
            return
        except (json.JSONDecodeError, ValueError) as e:
            logger.error(f"Error parsing FIREBASE_SERVICE_ACCOUNT_KEY: {e}")

    # Method 2: Service Account Key File (for local development only)
    service_account_key_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY_PATH")
    if service_account_key_path and os.path.exists(service_account_key_path):
        cred = credentials.Certificate(service_account_key_path)
        firebase_admin.initialize_app(cred, options)
        logger.info("Firebase Admin SDK initialized with Service Account Key from file path.")
        return

    # Method 3: GOOGLE_APPLICATION_CREDENTIALS / Application Default Credentials
    firebase_admin.initialize_app(options=options)
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        logger.info("Firebase Admin SDK initialized with GOOGLE_APPLICATION_CREDENTIALS.")
    else:
        logger.warning("Firebase Admin SDK initialized with default Application Default Credentials.")


@lru_cache(maxsize=1)
def get_firestore_client():
    initialize_firebase()
    return firestore.client()


def verify_id_token(token: str) -> dict:
    initialize_firebase()
    return firebase_auth.verify_id_token(token)
