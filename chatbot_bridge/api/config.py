"""
# @file purpose: Configurazione del servizio da environment

Tutti i parametri (URL chatbot, selettori DOM, timeout, percorsi file)
sono letti da variabili d'ambiente con default ragionevoli.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--disable-features=IsolateOrigins,site-per-process",
    "--window-size=1920,1080",
]


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Selectors:
    """Selettori CSS della chat web target"""
    input: str = "#prompt-textarea"
    submit_button: str = 'button[data-testid="send-button"]'
    response: str = '[data-message-author-role="assistant"]'
    response_content: str = ".markdown"
    stop_button: str = 'button[data-testid="stop-button"]'


@dataclass
class Timeouts:
    """Budget temporali (millisecondi) dei singoli step"""
    navigation: int = 30000
    selector: int = 10000
    response: int = 60000
    indicator_grace: int = 5000
    input_settle: int = 500
    fallback_settle: int = 8000


@dataclass
class ServiceConfig:
    """Configurazione completa del servizio"""
    chatbot_url: str = "https://chatgpt.com/"
    headless: bool = True
    host: str = "0.0.0.0"
    port: int = 3000
    api_key: Optional[str] = None
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    session_file: Path = Path("./session.json")
    diagnostics_dir: Path = Path("./diagnostics")
    structured_replies: bool = False
    max_prompt_length: int = 10000
    request_delay: float = 1.0
    reinit_delay: float = 5.0
    viewport_width: int = 1920
    viewport_height: int = 1080
    user_agent: str = DEFAULT_USER_AGENT
    browser_args: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))
    selectors: Selectors = field(default_factory=Selectors)
    timeouts: Timeouts = field(default_factory=Timeouts)


def load_config() -> ServiceConfig:
    """Costruisce la configurazione leggendo le variabili d'ambiente"""
    selectors = Selectors(
        input=os.environ.get("INPUT_SELECTOR", Selectors.input),
        submit_button=os.environ.get("SUBMIT_SELECTOR", Selectors.submit_button),
        response=os.environ.get("RESPONSE_SELECTOR", Selectors.response),
        response_content=os.environ.get("RESPONSE_CONTENT_SELECTOR", Selectors.response_content),
        stop_button=os.environ.get("STOP_SELECTOR", Selectors.stop_button),
    )

    api_key = os.environ.get("CHATBOT_API_KEY") or None
    if not api_key:
        logger.warning("⚠️ CHATBOT_API_KEY non impostata - endpoint /chat senza autenticazione")

    config = ServiceConfig(
        chatbot_url=os.environ.get("CHATBOT_URL", ServiceConfig.chatbot_url),
        headless=_env_bool("HEADLESS", True),
        host=os.environ.get("HOST", ServiceConfig.host),
        port=int(os.environ.get("PORT", ServiceConfig.port)),
        api_key=api_key,
        allowed_origins=os.environ.get("ALLOWED_ORIGINS", "*").split(","),
        session_file=Path(os.environ.get("SESSION_FILE", "./session.json")),
        diagnostics_dir=Path(os.environ.get("DIAGNOSTICS_DIR", "./diagnostics")),
        structured_replies=_env_bool("STRUCTURED_REPLIES", False),
        max_prompt_length=int(os.environ.get("MAX_PROMPT_LENGTH", ServiceConfig.max_prompt_length)),
        request_delay=float(os.environ.get("REQUEST_DELAY_SECONDS", ServiceConfig.request_delay)),
        reinit_delay=float(os.environ.get("REINIT_DELAY_SECONDS", ServiceConfig.reinit_delay)),
        selectors=selectors,
    )

    logger.info(f"✅ Configurazione caricata - Chatbot URL: {config.chatbot_url}")
    logger.info(f"✅ CORS configurato per origins: {config.allowed_origins}")

    return config
