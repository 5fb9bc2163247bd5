from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy


db = SQLAlchemy()

# Limits and storage come from app.config (RATELIMIT_DEFAULT / RATELIMIT_STORAGE_URI).
limiter = Limiter(key_func=get_remote_address)
