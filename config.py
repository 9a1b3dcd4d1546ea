import os


def _env_flag(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///expenseflow.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = True
    WTF_CSRF_HEADERS = ["X-CSRFToken", "X-CSRF-Token"]
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    API_PREFIX = os.environ.get("API_PREFIX", "/api/v1")

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")
    EXCHANGE_API_URL = os.environ.get("EXCHANGE_API_URL", "https://api.exchangerate-api.com/v4/latest/{base}")
    EXCHANGE_API_TIMEOUT = int(os.environ.get("EXCHANGE_API_TIMEOUT", 10))
    # Static rate overrides, {"USD": {"INR": 85.0}}; consulted before the API.
    CURRENCY_RATES: dict = {}

    APPROVAL_REJECTION_POLICY = os.environ.get("APPROVAL_REJECTION_POLICY", "veto")
    APPROVAL_COMMIT_RETRIES = int(os.environ.get("APPROVAL_COMMIT_RETRIES", 3))
    TEMP_PASSWORD_LENGTH = int(os.environ.get("TEMP_PASSWORD_LENGTH", 12))

    MAIL_SERVER = os.environ.get("SMTP_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("SMTP_PORT", 587))
    MAIL_USERNAME = os.environ.get("SMTP_USERNAME")
    MAIL_PASSWORD = os.environ.get("SMTP_PASSWORD")
    MAIL_USE_TLS = _env_flag("SMTP_USE_TLS", "true")
    MAIL_DEFAULT_SENDER = os.environ.get("SMTP_FROM_EMAIL", "no-reply@expenseflow.local")
    MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND")


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG")
    MAIL_SUPPRESS_SEND = _env_flag("MAIL_SUPPRESS_SEND", "true")


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    WTF_CSRF_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    EXCHANGE_API_URL = ""
    CURRENCY_RATES = {"USD": {"INR": 85.0, "EUR": 0.92}, "EUR": {"INR": 90.0, "USD": 1.087}}


class ProductionConfig(Config):
    SECRET_KEY = os.environ.get("SECRET_KEY")
    SESSION_COOKIE_SECURE = True


config_by_name = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
