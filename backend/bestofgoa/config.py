from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/bestofgoa"

    AWS_ENDPOINT_URL: str = "https://s3.amazonaws.com"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION_NAME: str = "ap-south-1"
    S3_BUCKET_NAME: str = "bestofgoa-images"

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    # External multi-step extraction runner (Apify / Firecrawl / AI enrichment)
    EXTRACTION_RUNNER_URL: str = "http://extraction-runner:8080"
    EXTRACTION_RUNNER_TIMEOUT_SECONDS: float = 15.0

    # Admin client library
    ADMIN_API_URL: str = "http://127.0.0.1:8000"
    POLL_INTERVAL_SECONDS: float = 2.0
    POLL_TIMEOUT_SECONDS: float = 600.0
    PUBLISH_REDIRECT_DELAY_SECONDS: float = 1.5

    PUBLIC_SITE_URL: str = "https://bestofgoa.com"
    SITE_NAME: str = "Best of Goa"

    class Config:
        env_file = ".env"

settings = Settings()
