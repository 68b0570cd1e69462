"""
# @file purpose: Persistenza della sessione browser (cookies + localStorage)

Salva e ripristina lo stato di autenticazione della chat web in un file
JSON leggibile, così che un browser appena lanciato risulti già loggato.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field

from .automation import AutomationPage
from .errors import PersistenceFailure

logger = logging.getLogger(__name__)

READ_LOCAL_STORAGE_JS = """() => {
    const data = {};
    for (let i = 0; i < window.localStorage.length; i++) {
        const key = window.localStorage.key(i);
        if (key !== null) {
            data[key] = window.localStorage.getItem(key) || '';
        }
    }
    return data;
}"""

WRITE_LOCAL_STORAGE_JS = """(data) => {
    for (const [key, value] of Object.entries(data)) {
        window.localStorage.setItem(key, value);
    }
}"""


class SessionData(BaseModel):
    """Formato su disco della sessione"""
    model_config = ConfigDict(populate_by_name=True)

    cookies: List[Dict[str, Any]] = Field(default_factory=list)
    local_storage: Dict[str, str] = Field(default_factory=dict, alias="localStorage")


class SessionStore:
    """Legge e scrive la sessione su file"""

    def __init__(self, session_file: Path, navigation_timeout: int = 30000):
        self.session_file = Path(session_file)
        self.navigation_timeout = navigation_timeout

    def exists(self) -> bool:
        return self.session_file.exists()

    def load(self) -> SessionData:
        """Carica la sessione dal file"""
        try:
            raw = self.session_file.read_text(encoding="utf-8")
            return SessionData.model_validate_json(raw)
        except Exception as e:
            raise PersistenceFailure(f"Lettura sessione fallita: {e}") from e

    def write(self, session: SessionData) -> Path:
        """Scrive la sessione su file (JSON indentato)"""
        try:
            self.session_file.parent.mkdir(parents=True, exist_ok=True)
            self.session_file.write_text(
                session.model_dump_json(by_alias=True, indent=2),
                encoding="utf-8"
            )
        except OSError as e:
            raise PersistenceFailure(f"Scrittura sessione fallita: {e}") from e

        return self.session_file

    async def save(self, page: AutomationPage) -> SessionData:
        """Legge cookies e localStorage dalla pagina e li salva"""
        try:
            cookies = await page.cookies()
            storage = await page.evaluate(READ_LOCAL_STORAGE_JS)
        except Exception as e:
            raise PersistenceFailure(f"Lettura stato browser fallita: {e}") from e

        session = SessionData(cookies=cookies, local_storage=storage or {})
        self.write(session)

        logger.info(
            f"💾 Sessione salvata: {self.session_file} "
            f"({len(session.cookies)} cookies, {len(session.local_storage)} chiavi localStorage)"
        )
        return session

    async def restore(self, page: AutomationPage, url: str) -> bool:
        """Ripristina la sessione salvata sulla pagina.

        La pagina viene prima portata sull'URL target: i cookie si possono
        impostare solo per un dominio già visitato e il localStorage richiede
        un documento. Ritorna False se non c'era sessione o se il ripristino
        fallisce; in quel caso si prosegue con una sessione non autenticata.
        """
        try:
            if not self.exists():
                logger.info("ℹ️ Nessuna sessione salvata, navigazione senza sessione...")
                await page.navigate(url, self.navigation_timeout)
                return False

            session = self.load()

            await page.navigate(url, self.navigation_timeout)
            await page.set_cookies(session.cookies)
            await page.evaluate(WRITE_LOCAL_STORAGE_JS, session.local_storage)
            await page.reload(self.navigation_timeout)

            logger.info(f"✅ Sessione ripristinata ({len(session.cookies)} cookies)")
            return True

        except Exception as e:
            logger.error(f"❌ Ripristino sessione fallito: {e}")
            return False
