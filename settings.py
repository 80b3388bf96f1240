"""
Runtime configuration for the Little Treasures API.

Values are read from the environment once at import time; a local .env file
is honoured for development.
"""
import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "little_treasures")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
TOKEN_TTL_DAYS = int(os.getenv("TOKEN_TTL_DAYS", 7))

OTP_TTL_MINUTES = int(os.getenv("OTP_TTL_MINUTES", 10))
OTP_LENGTH = 6

SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 465))
EMAIL_USER = os.getenv("EMAIL_USER", "")
EMAIL_PASSWORD = os.getenv("EMAIL_PASSWORD", "")

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join("public", "uploads"))
UPLOAD_URL_PREFIX = "/uploads"
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
MAX_PRODUCT_IMAGES = 5

PASSWORD_HASH_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", 12))

# (max failed attempts, lock minutes)
CUSTOMER_LOCKOUT = (5, 30)
ADMIN_LOCKOUT = (3, 15)

LOW_STOCK_THRESHOLD = 5

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))
