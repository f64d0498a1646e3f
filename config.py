from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env.local", env_file_encoding="utf-8", extra="ignore")

    # Firebase
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    FIREBASE_CREDENTIALS_JSON_STRING: Optional[str] = None
    ITEMS_COLLECTION: str = "items"

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    OPENAI_EMBEDDING_TIMEOUT: float = 30.0

    # Text embedding provider: openai (default) | hash (offline, deterministic)
    EMBEDDING_PROVIDER: str = "openai"
    EMBEDDING_DIM: int = 1536  # hash provider only; openai dimension comes from the model
    # provider request size cap (candidate texts per embeddings call)
    EMBEDDING_BATCH_SIZE: int = 10

    # Search defaults
    SEARCH_DEFAULT_LIMIT: int = 20
    SEARCH_DEFAULT_MIN_SCORE: float = 0.3


settings = Settings()
