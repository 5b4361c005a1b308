from typing import List
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/styllio"
    DEBUG: bool = False

    AWS_ENDPOINT_URL: str
    AWS_ACCESS_KEY_ID: str
    AWS_SECRET_ACCESS_KEY: str
    AWS_REGION_NAME: str = "ru-1"
    S3_BUCKET_NAME: str
    S3_PUBLIC_BASE_URL: str = ""

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    STYLE_TRANSFER_TASK: str = ""
    STYLE_TRANSFER_QUEUE: str = "style_transfer"
    WORKER_API_KEY: str = ""

    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    CURRENCY: str = "usd"

    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = "Styllio <hello@styllio.app>"

    PUBLIC_BASE_URL: str = "http://localhost:3000"

    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ANONYMOUS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    CLAIM_TOKEN_TTL_HOURS: int = 72

    AVAILABLE_STYLES: List[str] = ["lunora", "aquarelle", "noir", "pop-art", "ghibli"]

    class Config:
        env_file = ".env"

settings = Settings()
