"""
Configuration loader for the document builder.

Loads all settings from environment variables (.env file).
Validates required settings and provides type-safe access.
"""

import os
from typing import List
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """
    Centralized configuration for the editor, services and web app.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== Storage =====
    # "atlas" uses MongoDB; "memory" keeps everything in-process (tests, demos)
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "atlas").lower()
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGO_DB_NAME: str = os.getenv("MONGO_DB_NAME", "docsmith")

    # ===== AI rewrite =====
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    AI_MODEL: str = os.getenv("AI_MODEL", "gpt-4o-mini")
    AI_TEMPERATURE: float = float(os.getenv("AI_TEMPERATURE", "0.4"))

    # ===== Company brief (Naver search API) =====
    NAVER_CLIENT_ID: str = os.getenv("NAVER_CLIENT_ID", "")
    NAVER_CLIENT_SECRET: str = os.getenv("NAVER_CLIENT_SECRET", "")

    # ===== Export =====
    PDF_SERVICE_URL: str = os.getenv("PDF_SERVICE_URL", "http://pdf-service:8001")

    # ===== Editor =====
    AUTOSAVE_DEBOUNCE_SECONDS: float = float(os.getenv("AUTOSAVE_DEBOUNCE_SECONDS", "0.8"))
    AUTOSAVE_SETTLE_SECONDS: float = float(os.getenv("AUTOSAVE_SETTLE_SECONDS", "1.2"))
    PRESET_STORE_PATH: str = os.getenv("PRESET_STORE_PATH", "")

    @classmethod
    def use_memory_storage(cls) -> bool:
        """True when repositories should be in-process dictionaries."""
        return cls.STORAGE_BACKEND == "memory"

    @classmethod
    def missing_settings(cls) -> List[str]:
        """Names of required settings that are empty."""
        required_settings = {
            "OPENAI_API_KEY": cls.OPENAI_API_KEY,
        }
        if not cls.use_memory_storage():
            required_settings["MONGODB_URI"] = cls.MONGODB_URI

        return [name for name, value in required_settings.items() if not value]

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required configuration is present.
        Raises ValueError if critical settings are missing.
        """
        missing = cls.missing_settings()
        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

        if cls.STORAGE_BACKEND not in ("atlas", "memory"):
            raise ValueError(
                f"STORAGE_BACKEND must be 'atlas' or 'memory', got '{cls.STORAGE_BACKEND}'"
            )

        if cls.AUTOSAVE_DEBOUNCE_SECONDS <= 0:
            raise ValueError("AUTOSAVE_DEBOUNCE_SECONDS must be positive")

    @classmethod
    def naver_enabled(cls) -> bool:
        return bool(cls.NAVER_CLIENT_ID and cls.NAVER_CLIENT_SECRET)

    @classmethod
    def summary(cls) -> str:
        """Return a summary of the current configuration (safe for logging)."""
        return f"""
Configuration Summary:
  Storage: {cls.STORAGE_BACKEND} {'✓' if cls.use_memory_storage() or cls.MONGODB_URI else '✗ Missing MONGODB_URI'}
  Database: {cls.MONGO_DB_NAME}
  AI: {cls.AI_MODEL} {'✓' if cls.OPENAI_API_KEY else '✗ Missing'}
  Naver search: {'✓ Configured' if cls.naver_enabled() else '✗ Disabled'}
  PDF service: {cls.PDF_SERVICE_URL}
  Autosave: debounce={cls.AUTOSAVE_DEBOUNCE_SECONDS}s settle={cls.AUTOSAVE_SETTLE_SECONDS}s
        """.strip()
