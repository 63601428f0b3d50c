import os
from datetime import timedelta

from dotenv import load_dotenv

# Load .env from project root so local development MONGO_URI is picked up
load_dotenv()

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
MB = 1024 * 1024


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "change-this-jwt-secret")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get("JWT_EXPIRES_HOURS", "12")))

    MONGO_URI = os.environ.get("MONGO_URI", "mongodb://localhost:27017/?directConnection=true")
    MONGO_DB_NAME = os.environ.get("MONGO_DB_NAME", "taskmanager")

    UPLOAD_FOLDER = os.environ.get("UPLOAD_FOLDER", os.path.join(BASE_DIR, "uploads"))
    MAX_ATTACHMENT_BYTES = int(os.environ.get("MAX_ATTACHMENT_MB", "5")) * MB
    MAX_ATTACHMENTS_PER_TASK = 3
    ALLOWED_ATTACHMENT_TYPES = ("application/pdf",)
    # Three full-size attachments plus room for the form fields.
    MAX_CONTENT_LENGTH = MAX_ATTACHMENTS_PER_TASK * MAX_ATTACHMENT_BYTES + MB

    PREVIEW_TOKEN_TTL_SECONDS = int(os.environ.get("PREVIEW_TOKEN_TTL_SECONDS", "3600"))
    PREVIEW_TOKEN_SWEEP_INTERVAL_SECONDS = int(os.environ.get("PREVIEW_TOKEN_SWEEP_INTERVAL_SECONDS", "300"))

    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = "test-secret"
    JWT_SECRET_KEY = "test-jwt-secret-with-enough-length-for-hs256"
    MONGO_DB_NAME = "taskmanager_test"
    LOG_LEVEL = "DEBUG"
