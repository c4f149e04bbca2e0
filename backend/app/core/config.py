from typing import List, Optional
from pathlib import Path
from pydantic import validator
from pydantic_settings import BaseSettings


DEFAULT_FLOWS_PATH = str(Path(__file__).resolve().parents[3] / "triage" / "conversation" / "flows")


class Settings(BaseSettings):
    # Application
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Triage Chatbot"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    # LLM Configuration (OpenAI-compatible chat completions endpoint)
    LLM_API_BASE: str = "https://api.openai.com/v1"
    LLM_API_KEY: Optional[str] = None
    LLM_MODEL: str = "gpt-3.5-turbo"
    LLM_TIMEOUT: int = 60
    CLASSIFIER_TEMPERATURE: float = 0.0
    SUMMARY_TEMPERATURE: float = 0.7

    # Conversation Flow
    CONVERSATION_FLOWS_PATH: str = DEFAULT_FLOWS_PATH
    ENTRY_NODE_ID: str = "greeting"
    TERMINAL_NODE_ID: str = "end"
    EMAIL_NODE_ID: str = "get_email"
    AGE_NODE_ID: str = "get_age"
    CLINIC_NODE_IDS: str = "find_clinic_north,find_clinic_mid,find_clinic_south,find_clinic_east,find_clinic_out"
    OPEN_ENDED_AUTO_ADVANCE: bool = True
    INFO_BASE_URL: str = "https://example.com/info"

    # Email (summary delivery)
    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 465
    SMTP_USERNAME: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    EMAIL_SENDER: Optional[str] = None
    EMAIL_SUBJECT: str = "這是您的醫療建議與診所資訊"
    SMTP_TIMEOUT: int = 30

    @validator("LOG_LEVEL", pre=True)
    def validate_log_level(cls, v: Optional[str]) -> str:
        level = (v or "INFO").upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unsupported LOG_LEVEL: {v}")
        return level

    @validator("LOG_FORMAT")
    def validate_log_format(cls, v: str) -> str:
        if v not in {"json", "text"}:
            raise ValueError("LOG_FORMAT must be 'json' or 'text'")
        return v

    @property
    def clinic_node_ids(self) -> List[str]:
        return [node_id.strip() for node_id in self.CLINIC_NODE_IDS.split(",") if node_id.strip()]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
