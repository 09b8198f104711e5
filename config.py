import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_user_id: int,
        smtp_host: str,
        smtp_port: int,
        smtp_username: Optional[str],
        smtp_password: Optional[str],
        smtp_use_tls: bool,
        smtp_timeout_secs: float,
        mail_from: str,
        gemini_api_key: Optional[str],
        gemini_model: str,
        insight_timeout_secs: float,
        commit_timeout_secs: float,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_user_id = default_user_id
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_username = smtp_username
        self.smtp_password = smtp_password
        self.smtp_use_tls = smtp_use_tls
        self.smtp_timeout_secs = smtp_timeout_secs
        self.mail_from = mail_from
        self.gemini_api_key = gemini_api_key
        self.gemini_model = gemini_model
        self.insight_timeout_secs = insight_timeout_secs
        self.commit_timeout_secs = commit_timeout_secs


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGERLY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledgerly.db"
    database_url = os.getenv("LEDGERLY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGERLY_TIMEZONE", "UTC")
    default_user_id = int(os.getenv("LEDGERLY_DEFAULT_USER_ID", "1"))
    smtp_host = os.getenv("LEDGERLY_SMTP_HOST", "localhost")
    smtp_port = int(os.getenv("LEDGERLY_SMTP_PORT", "587"))
    smtp_username = os.getenv("LEDGERLY_SMTP_USERNAME") or None
    smtp_password = os.getenv("LEDGERLY_SMTP_PASSWORD") or None
    smtp_use_tls = _env_flag("LEDGERLY_SMTP_USE_TLS", "true")
    smtp_timeout_secs = float(os.getenv("LEDGERLY_SMTP_TIMEOUT_SECS", "10"))
    mail_from = os.getenv("LEDGERLY_MAIL_FROM", "reports@ledgerly.local")
    gemini_api_key = os.getenv("LEDGERLY_GEMINI_API_KEY") or None
    gemini_model = os.getenv("LEDGERLY_GEMINI_MODEL", "gemini-2.0-flash")
    insight_timeout_secs = float(os.getenv("LEDGERLY_INSIGHT_TIMEOUT_SECS", "15"))
    commit_timeout_secs = float(os.getenv("LEDGERLY_COMMIT_TIMEOUT_SECS", "10"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_user_id=default_user_id,
        smtp_host=smtp_host,
        smtp_port=smtp_port,
        smtp_username=smtp_username,
        smtp_password=smtp_password,
        smtp_use_tls=smtp_use_tls,
        smtp_timeout_secs=smtp_timeout_secs,
        mail_from=mail_from,
        gemini_api_key=gemini_api_key,
        gemini_model=gemini_model,
        insight_timeout_secs=insight_timeout_secs,
        commit_timeout_secs=commit_timeout_secs,
    )
