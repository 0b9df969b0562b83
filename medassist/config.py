import logging
import os


class Settings:
    google_cloud_project: str | None = os.getenv("GOOGLE_CLOUD_PROJECT")
    google_cloud_location: str = os.getenv("GOOGLE_CLOUD_LOCATION", "us-central1")
    model_name: str = os.getenv("MEDASSIST_MODEL", "gemini-2.5-flash-lite")

    temperature: float = float(os.getenv("MEDASSIST_TEMPERATURE", "0.7"))
    top_p: float = float(os.getenv("MEDASSIST_TOP_P", "0.9"))
    top_k: int = int(os.getenv("MEDASSIST_TOP_K", "40"))
    max_output_tokens: int = int(os.getenv("MEDASSIST_MAX_OUTPUT_TOKENS", "2048"))

    max_message_length: int = int(os.getenv("MEDASSIST_MAX_MESSAGE_LENGTH", "5000"))
    prompt_history_turns: int = int(os.getenv("MEDASSIST_PROMPT_HISTORY_TURNS", "6"))
    history_window: int = int(os.getenv("MEDASSIST_HISTORY_WINDOW", "10"))

    # Heuristic bounds, tune per backend
    suggestion_min_length: int = int(os.getenv("MEDASSIST_SUGGESTION_MIN_LENGTH", "11"))
    suggestion_max_length: int = int(os.getenv("MEDASSIST_SUGGESTION_MAX_LENGTH", "149"))
    update_interval_ms: int = int(os.getenv("MEDASSIST_UPDATE_INTERVAL_MS", "50"))

    log_level: str = os.getenv("MEDASSIST_LOG_LEVEL", "INFO")

    @property
    def update_interval(self) -> float:
        return self.update_interval_ms / 1000.0


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    root = logging.getLogger("medassist")
    root.setLevel((level or settings.log_level).upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        root.addHandler(handler)
