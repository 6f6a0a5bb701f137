
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agencydocs.db")
MINIO_ENDPOINT = os.getenv("MINIO_ENDPOINT", "minio:9000")
MINIO_ACCESS_KEY = os.getenv("MINIO_ACCESS_KEY", "minioadmin")
MINIO_SECRET_KEY = os.getenv("MINIO_SECRET_KEY", "minioadmin")
MINIO_BUCKET = os.getenv("MINIO_BUCKET", "agency-documents")
MINIO_SECURE = os.getenv("MINIO_SECURE", "0") == "1"
SECRET_KEY = os.getenv("SECRET_KEY", "devsecret")
ADMIN_ACCESS_TOKEN = os.getenv("ADMIN_ACCESS_TOKEN")
WEB_BASE_URL = os.getenv("WEB_BASE_URL", "http://localhost:3000")
CORS_ALLOW_ORIGINS = [o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()]

INVITATION_TTL_HOURS = int(os.getenv("INVITATION_TTL_HOURS", "24"))
RENEWAL_WINDOW_DAYS = int(os.getenv("RENEWAL_WINDOW_DAYS", "90"))
UPCOMING_RENEWALS_LIMIT = int(os.getenv("UPCOMING_RENEWALS_LIMIT", "5"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_LOG_LEVEL = os.getenv("SQL_LOG_LEVEL", "WARNING").upper()
