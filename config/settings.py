import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from config/.env
BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")


class Settings:
    # No default: the client refuses to run without it, e.g. http://127.0.0.1:8188
    COMFYUI_URL: str = os.getenv("COMFYUI_URL", "")
    COMFYUI_CLIENT_ID: str = os.getenv("COMFYUI_CLIENT_ID", "")

    # Optional, both must be set for the translate node to be added
    BAIDU_TRANSLATE_APP_ID: str | None = os.getenv("BAIDU_TRANSLATE_APP_ID")
    BAIDU_TRANSLATE_APP_KEY: str | None = os.getenv("BAIDU_TRANSLATE_APP_KEY")

    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "1.0"))  # seconds
    POLL_MAX_ATTEMPTS: int = int(os.getenv("POLL_MAX_ATTEMPTS", "300"))
    REQUEST_TIMEOUT: float = float(os.getenv("REQUEST_TIMEOUT", "30.0"))

settings = Settings()
