from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./takeoff.db"
    LOG_LEVEL: str = "INFO"

    # Auth
    JWT_SECRET: str = ""  # REQUIRED in production — fail loudly if missing at auth time
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_EXPIRE_MINUTES: int = 60

    # Uploads
    UPLOAD_DIR: str = "uploads/maps"
    MAX_UPLOAD_MB: int = 50

    # Estimating
    DEFAULT_CURRENCY: str = "USD"
    COST_RULES_PATH: str = ""  # JSON rule table for /calculate when the request sends none

    # Cloudflare R2 — optional, local UPLOAD_DIR is used when unset
    CLOUDFLARE_R2_ACCOUNT_ID: str = ""
    CLOUDFLARE_R2_ACCESS_KEY_ID: str = ""
    CLOUDFLARE_R2_SECRET_ACCESS_KEY: str = ""
    CLOUDFLARE_R2_BUCKET: str = "takeoff-maps"

    class Config:
        env_file = ".env"


settings = Settings()
