from pydantic_settings import BaseSettings, SettingsConfigDict

from dotenv import load_dotenv
load_dotenv()


# Ordered by free-tier favorability: best RPM/TPM allowance first.
DEFAULT_MODELS = "gemini-1.5-flash,gemini-1.5-flash-002,gemini-1.5-pro"


class Settings(BaseSettings):
    PROJECT_NAME: str = "beatsmith"

    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    GEMINI_MODELS: str = DEFAULT_MODELS

    # Conservative: the free tier allows 15 RPM.
    RATE_LIMIT_PER_MINUTE: int = 10
    RATE_LIMIT_PER_DAY: int = 200

    MODEL_TIMEOUT_SECONDS: float = 60.0
    MAX_OUTPUT_TOKENS: int = 2048
    TEMPERATURE: float = 0.9
    HISTORY_WINDOW: int = 12

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def model_ids(self) -> list[str]:
        return [m.strip() for m in self.GEMINI_MODELS.split(",") if m.strip()]

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def describe_key(self) -> dict:
        """Credential summary that is safe to log or expose."""
        key = self.GEMINI_API_KEY
        return {
            "hasGeminiKey": bool(key),
            "keyLength": len(key),
            "keyPrefix": key[:4] + "****" if key else "none",
        }


settings = Settings()
