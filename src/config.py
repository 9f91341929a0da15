"""
src/config.py
"""


import os
from enum import Enum
from typing import Optional
from pydantic import BaseModel


class Language(str, Enum):

    EN = "en"
    ZH = "zh"

class Backend(str, Enum):

    NATIVE = "native"
    PROXY = "proxy"


# Defaults
DEFAULT_LANGUAGE: Language = Language.EN
DEFAULT_MODEL: str = "gemini-2.0-flash-exp"
DEFAULT_TEMPERATURE: float = 0.4
MAX_TOOL_ROUNDS: int = 5                    # Tool rounds per chat call
DEBOUNCE_SECONDS: float = 0.5               # Pipeline re-run window
NATIVE_HOST: str = "googleapis.com"
NATIVE_MODELS_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"


class Settings(BaseModel):
    """Credentials and endpoint selection for the chat backends."""

    api_key: str = ""
    base_url: str = ""
    language: Language = DEFAULT_LANGUAGE
    model: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":

        return cls(
            api_key=os.getenv("API_KEY", ""),
            base_url=os.getenv("API_BASE_URL", ""),
            language=os.getenv("UI_LANGUAGE", DEFAULT_LANGUAGE.value),
            model=os.getenv("API_MODEL") or None,
        )

    @property
    def backend(self) -> Backend:
        """No base URL, or one on the native provider's domain, means native."""

        base = self.base_url.strip()
        if not base or NATIVE_HOST in base:
            return Backend.NATIVE
        return Backend.PROXY

    @property
    def clean_base_url(self) -> str:

        return self.base_url.strip().rstrip("/")

    @property
    def model_name(self) -> str:

        return self.model or DEFAULT_MODEL
# EOF
