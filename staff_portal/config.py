import os

basedir = os.path.abspath(os.path.dirname(__file__))


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key"
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # PostgreSQL when DATABASE_URL is set, otherwise a local SQLite file
    SQLALCHEMY_DATABASE_URI = (
        os.environ.get("DATABASE_URL") or
        f"sqlite:///{os.path.join(basedir, '..', 'staff_portal.db')}"
    )

    # Lifetime of a bearer token, in seconds
    TOKEN_MAX_AGE = int(os.environ.get("TOKEN_MAX_AGE", 8 * 60 * 60))

    MAX_CONTENT_LENGTH = int(os.environ.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024))
    ALLOWED_UPLOAD_EXTENSIONS = {'csv', 'xlsx', 'xls'}

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "testing-secret-key"
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
