import os

DATABASE_URL = os.getenv("ELIB_DB", "sqlite:///./elibrary.db")
LOG_LEVEL = os.getenv("ELIB_LOG", "INFO")

# attempts for rent/return before a conflict reaches the client
RENT_RETRIES = int(os.getenv("ELIB_RENT_RETRIES", "3"))
RETRY_BACKOFF = float(os.getenv("ELIB_RETRY_BACKOFF", "0.05"))

DEFAULT_RENTAL_DAYS = int(os.getenv("ELIB_DEFAULT_RENTAL_DAYS", "14"))
