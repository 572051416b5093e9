"""
Configuration module for the application.
All configuration values are read from environment variables.
Values missing from the .env file fall back to development defaults.
"""
import os
import secrets
import warnings


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self):
        """Initialize configuration from environment variables."""
        # Flask Configuration
        self.SECRET_KEY: str = os.getenv("SECRET_KEY", "")
        self.FLASK_ENV: str = os.getenv("FLASK_ENV", "")
        self.FLASK_DEBUG: bool = os.getenv("FLASK_DEBUG", "").lower() == "true"
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # Generate a development SECRET_KEY if not set and in development mode
        if not self.SECRET_KEY and self.FLASK_ENV != "production":
            self.SECRET_KEY = secrets.token_urlsafe(32)
            warnings.warn(
                "SECRET_KEY not set. Generated a temporary key for development. "
                "Set SECRET_KEY in your .env file for production!",
                UserWarning
            )

        # Database Configuration
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "")
        self.DB_USER: str = os.getenv("DB_USER", "")
        self.DB_PASSWORD: str = os.getenv("DB_PASSWORD", "")
        self.DB_HOST: str = os.getenv("DB_HOST", "")
        self.DB_PORT: str = os.getenv("DB_PORT", "3306")
        self.DB_NAME: str = os.getenv("DB_NAME", "")

        # Transient database failures are retried with exponential backoff
        self.DB_RETRY_ATTEMPTS: int = int(os.getenv("DB_RETRY_ATTEMPTS", "3"))
        self.DB_RETRY_BACKOFF_SECONDS: float = float(os.getenv("DB_RETRY_BACKOFF_SECONDS", "0.2"))

        # API Configuration
        self.API_PREFIX: str = os.getenv("API_PREFIX", "/api")
        self.AUTH_API_PREFIX: str = os.getenv("AUTH_API_PREFIX", f"{self.API_PREFIX}/auth")
        self.ANALYTICS_API_PREFIX: str = os.getenv("ANALYTICS_API_PREFIX", f"{self.API_PREFIX}/analytics")

        # Password Validation
        min_pass_len = os.getenv("MIN_PASSWORD_LENGTH", "")
        self.MIN_PASSWORD_LENGTH: int = int(min_pass_len) if min_pass_len else 8

        # User Type Validation
        valid_user_types = os.getenv("VALID_USER_TYPES", "student,teacher,admin")
        self.VALID_USER_TYPES: list[str] = [t.strip() for t in valid_user_types.split(",") if t.strip()]
        self.DEFAULT_USER_TYPE: str = os.getenv("DEFAULT_USER_TYPE", "student")
        # Roles that may be chosen at self-registration; admins are created out of band
        self_register = os.getenv("SELF_REGISTER_USER_TYPES", "student,teacher")
        self.SELF_REGISTER_USER_TYPES: list[str] = [t.strip() for t in self_register.split(",") if t.strip()]

        # Attempt Configuration
        self.ATTEMPT_GRACE_SECONDS: int = int(os.getenv("ATTEMPT_GRACE_SECONDS", "30"))

        # Rate limits, "<max requests>/<window seconds>"
        self.LOGIN_RATE_LIMIT: str = os.getenv("LOGIN_RATE_LIMIT", "10/60")
        self.SUBMIT_RATE_LIMIT: str = os.getenv("SUBMIT_RATE_LIMIT", "30/60")

        # Success Messages
        self.MSG_REGISTER_SUCCESS: str = os.getenv("MSG_REGISTER_SUCCESS", "Registration successful")
        self.MSG_LOGIN_SUCCESS: str = os.getenv("MSG_LOGIN_SUCCESS", "Login successful")
        self.MSG_LOGOUT_SUCCESS: str = os.getenv("MSG_LOGOUT_SUCCESS", "Logged out")

        # Session Configuration
        session_secure = os.getenv("SESSION_COOKIE_SECURE", "")
        self.SESSION_COOKIE_SECURE: bool = session_secure.lower() == "true" if session_secure else False
        session_httponly = os.getenv("SESSION_COOKIE_HTTPONLY", "true")
        self.SESSION_COOKIE_HTTPONLY: bool = session_httponly.lower() == "true"
        self.SESSION_COOKIE_SAMESITE: str = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")

        # SQLAlchemy Configuration
        self.SQLALCHEMY_TRACK_MODIFICATIONS: bool = False
        sqlalchemy_echo = os.getenv("SQLALCHEMY_ECHO", "")
        self.SQLALCHEMY_ECHO: bool = sqlalchemy_echo.lower() == "true" if sqlalchemy_echo else False

    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Construct database URI from environment variables."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.DB_HOST:
            return (
                f"mysql+pymysql://{self.DB_USER}:{self.DB_PASSWORD}"
                f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?charset=utf8mb4"
            )
        return "sqlite:///quizhub.db"

    @staticmethod
    def parse_rate_limit(value: str) -> tuple[int, int]:
        """Parse a "<max>/<seconds>" rate limit string."""
        max_requests, _, window = value.partition("/")
        return int(max_requests), int(window or 60)

    def validate(self) -> None:
        """
        Validate required configuration values.
        Only enforces SECRET_KEY in production environment.
        """
        if not self.SECRET_KEY:
            if self.FLASK_ENV == "production":
                raise ValueError(
                    "SECRET_KEY environment variable is required in production. "
                    "Set it in your .env file or environment variables."
                )
            # For non-production, a warning was already issued in __init__
        if self.ATTEMPT_GRACE_SECONDS < 0:
            raise ValueError("ATTEMPT_GRACE_SECONDS must not be negative")
        if self.DB_RETRY_ATTEMPTS < 1:
            raise ValueError("DB_RETRY_ATTEMPTS must be at least 1")


# Global config instance - will be re-initialized after load_dotenv()
config = Config()
