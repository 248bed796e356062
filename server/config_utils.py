import os
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from dotenv import load_dotenv


logger = logging.getLogger(__name__)

DEFAULT_DATASET_PATH = os.path.join(os.path.dirname(__file__), "data", "dataset.csv")

IDENTITY_VARS = ("TENANT_ID", "CLIENT_ID", "CLIENT_SECRET")
EMBED_VARS = ("POWERBI_GROUP_ID", "POWERBI_REPORT_ID")
LLM_VARS = ("OPENAI_API_KEY",)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Process configuration, resolved once at startup."""

    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    group_id: Optional[str] = None
    report_id: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    dataset_path: str = DEFAULT_DATASET_PATH
    search_result_limit: int = 3
    http_timeout: int = 15
    log_level: str = "INFO"
    port: int = 3000

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        if dotenv:
            load_dotenv()
        return cls(
            tenant_id=os.getenv("TENANT_ID") or None,
            client_id=os.getenv("CLIENT_ID") or None,
            client_secret=os.getenv("CLIENT_SECRET") or None,
            group_id=os.getenv("POWERBI_GROUP_ID") or None,
            report_id=os.getenv("POWERBI_REPORT_ID") or None,
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            dataset_path=os.getenv("DATASET_PATH", DEFAULT_DATASET_PATH),
            search_result_limit=max(1, _int_env("SEARCH_RESULT_LIMIT", 3)),
            http_timeout=max(1, _int_env("HTTP_TIMEOUT_SECONDS", 15)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            port=_int_env("PORT", 3000),
        )

    def missing(self) -> Dict[str, List[str]]:
        """Unset variables, grouped by the concern that needs them."""
        values = {
            "TENANT_ID": self.tenant_id,
            "CLIENT_ID": self.client_id,
            "CLIENT_SECRET": self.client_secret,
            "POWERBI_GROUP_ID": self.group_id,
            "POWERBI_REPORT_ID": self.report_id,
            "OPENAI_API_KEY": self.openai_api_key,
        }
        groups = {"identity": IDENTITY_VARS, "embed": EMBED_VARS, "llm": LLM_VARS}
        return {
            concern: [name for name in names if not values[name]]
            for concern, names in groups.items()
        }

    @property
    def identity_configured(self) -> bool:
        return not self.missing()["identity"]

    @property
    def embed_configured(self) -> bool:
        return not self.missing()["embed"]

    @property
    def llm_enabled(self) -> bool:
        return bool(self.openai_api_key)
