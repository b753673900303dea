import os
from typing import Final


class Config:
    SECRET_KEY: Final[str] = os.getenv("SECRET_KEY", "change-me-in-production")
    try:
        SQLALCHEMY_DATABASE_URI: Final[str] = os.environ["DATABASE_URL"]
    except KeyError:
        raise RuntimeError("DATABASE_URL environment variable is required (no sqlite fallback)")
    SQLALCHEMY_TRACK_MODIFICATIONS: Final[bool] = False
    SESSION_COOKIE_HTTPONLY: Final[bool] = True
    SESSION_COOKIE_SECURE: Final[bool] = os.getenv("FLASK_ENV") == "production"
    SESSION_COOKIE_SAMESITE: Final[str] = os.getenv("SESSION_COOKIE_SAMESITE", "Lax")
    # 'development' lets invitations be issued while no mail channel is configured
    APP_ENV: Final[str] = os.getenv("APP_ENV", os.getenv("FLASK_ENV", "production"))
    # Base URL of the web client; invitation and entity links are built from it
    FRONTEND_URL: Final[str] = os.getenv("FRONTEND_URL", "http://localhost:3000")
    INVITATION_EXPIRY_DAYS: Final[int] = int(os.getenv("INVITATION_EXPIRY_DAYS", "7"))
    # Mail settings (invitation and direct-add notifications)
    MAIL_SERVER: Final[str] = os.getenv("MAIL_SERVER", "")
    MAIL_PORT: Final[int] = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS: Final[bool] = bool(os.getenv("MAIL_USE_TLS", "True") == "True")
    MAIL_USERNAME: Final[str] = os.getenv("MAIL_USERNAME", "")
    MAIL_PASSWORD: Final[str] = os.getenv("MAIL_PASSWORD", "")
    MAIL_DEFAULT_SENDER: Final[str] = os.getenv("MAIL_DEFAULT_SENDER", "no-reply@teamspace.local")
    # Which email provider to use. Set to 'resend' to use Resend API, or 'smtp' to use SMTP.
    EMAIL_PROVIDER: Final[str] = os.getenv("EMAIL_PROVIDER", "smtp")
    RESEND_API_KEY: Final[str] = os.getenv("RESEND_API_KEY", "")
