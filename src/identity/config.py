from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///identity.db", env="DATABASE_URL")
    redis_url: str = Field("redis://localhost:6379/0", env="REDIS_URL")
    api_title: str = Field("Identity API", env="API_TITLE")
    access_token_expire_minutes: int = Field(15, env="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_minutes: int = Field(60 * 24 * 7, env="REFRESH_TOKEN_EXPIRE_MINUTES")
    jwt_secret: str = Field("secret", env="JWT_SECRET")
    jwt_algorithm: str = Field("HS256", env="JWT_ALGORITHM")

    application_name: str = Field("ShareMyRevenue", env="APPLICATION_NAME")
    base_url_api: str = Field("http://localhost:8000", env="BASE_URL_API")
    admin_phone1: str | None = Field(None, env="ADMIN_PHONE1")
    admin_phone2: str | None = Field(None, env="ADMIN_PHONE2")

    min_password_length: int = Field(6, env="MIN_PASSWORD_LENGTH")
    daily_token_limit: int = Field(3, env="DAILY_TOKEN_LIMIT")
    registration_max_attempts: int = Field(10, env="REGISTRATION_MAX_ATTEMPTS")
    registration_window_hours: int = Field(24, env="REGISTRATION_WINDOW_HOURS")
    purge_frequency: int = Field(60 * 60, env="PURGE_FREQUENCY")
    bcrypt_rounds: int = Field(12, env="BCRYPT_ROUNDS")

    sendgrid_api_key: str | None = Field(None, env="SENDGRID_API_KEY")
    mail_from_email: str | None = Field(None, env="MAIL_FROM_EMAIL")
    twilio_account_sid: str | None = Field(None, env="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str | None = Field(None, env="TWILIO_AUTH_TOKEN")
    twilio_phone_number: str | None = Field(None, env="TWILIO_PHONE_NUMBER")


settings = Settings()
