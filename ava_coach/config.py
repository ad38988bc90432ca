import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class LLMSettings(BaseModel):
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    # model for the meal update analysis; may differ from the chat model
    analysis_model: str = "gpt-4o"
    temperature: float = 0.7


class DatabaseSettings(BaseModel):
    url: str = "sqlite:///./ava_coach.db"
    echo: bool = False


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    upload_dir: str = "./uploads"
    public_base_url: str = ""


class CoachSettings(BaseModel):
    default_calorie_target: int = 2400
    session_window_minutes: int = 60
    pr_history_limit: int = 50
    max_tool_iterations: int = 5


class Settings(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    coach: CoachSettings = Field(default_factory=CoachSettings)
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables (and a .env file)."""
        return cls(
            llm=LLMSettings(
                api_key=os.getenv("OPENAI_API_KEY", ""),
                base_url=os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1"),
                provider=os.getenv("LLM_PROVIDER", "openai"),
                model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
                analysis_model=os.getenv("LLM_ANALYSIS_MODEL", "gpt-4o"),
                temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            ),
            database=DatabaseSettings(
                url=os.getenv("DATABASE_URL", "sqlite:///./ava_coach.db"),
                echo=os.getenv("DATABASE_ECHO", "False").lower() == "true",
            ),
            server=ServerSettings(
                host=os.getenv("HOST", "0.0.0.0"),
                port=int(os.getenv("PORT", "3000")),
                cors_origins=_env_list("CORS_ORIGINS", "*"),
                upload_dir=os.getenv("UPLOAD_DIR", "./uploads"),
                public_base_url=os.getenv("PUBLIC_BASE_URL", ""),
            ),
            coach=CoachSettings(
                default_calorie_target=int(os.getenv("DEFAULT_CALORIE_TARGET", "2400")),
                session_window_minutes=int(os.getenv("SESSION_WINDOW_MINUTES", "60")),
                pr_history_limit=int(os.getenv("PR_HISTORY_LIMIT", "50")),
                max_tool_iterations=int(os.getenv("MAX_TOOL_ITERATIONS", "5")),
            ),
            debug=os.getenv("DEBUG", "False").lower() == "true",
        )

    def validate_llm(self) -> None:
        if not self.llm.api_key:
            raise ValueError("Missing required environment variable: OPENAI_API_KEY")


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
