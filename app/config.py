import os
from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import logging

load_dotenv()
log = logging.getLogger("uvicorn")

class Settings(BaseSettings):
    database_url: str = os.getenv("DATABASE_URL", "sqlite://./pokemon_local.db")
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    secret_key: str = os.getenv("SECRET_KEY", "samplesecretkey")
    access_token_expire_minutes: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1000"))
    algorithm: str = "HS256"

    upload_dir: str = os.getenv("UPLOAD_DIR", "public/uploads/pokemons")
    max_image_size: int = int(os.getenv("MAX_IMAGE_SIZE", str(2 * 1024 * 1024)))

    # Run Celery tasks in-process (tests, local dev without a broker)
    celery_task_always_eager: bool = os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in ("1", "true", "yes")

    class Config:
        env_file = '.env'
        extra = 'ignore'

settings = Settings()

TORTOISE_ORM_CONFIG = {
    "connections": {"default": settings.database_url},
    "apps": {
        "models": {
            "models": ["app.models", "aerich.models"],
            "default_connection": "default",
        },
    },
}

log.info(f"Database URL loaded (first few chars): {settings.database_url[:15]}...")
log.info(f"Redis URL loaded: {settings.redis_url}")
log.info(f"Image upload directory: {settings.upload_dir}")
