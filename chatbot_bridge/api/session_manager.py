"""
# @file purpose: Ciclo di vita del browser condiviso

Gestisce lancio, ripristino sessione, rilevamento disconnessione e
reinizializzazione del browser. Il browser è uno solo: viene sostituito,
mai riparato, quando si disconnette.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional, Tuple

from .automation import AutomationBrowser, AutomationEngine, AutomationPage
from .config import ServiceConfig
from .errors import PageNotInitializedError
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Stati del browser gestito"""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    DISCONNECTED = "disconnected"


class SessionEvent(Enum):
    """Messaggi dal motore al supervisore"""
    DISCONNECTED = "disconnected"


class BrowserSessionManager:
    """Possiede l'unico handle browser/pagina del processo"""

    def __init__(
        self,
        config: ServiceConfig,
        engine: AutomationEngine,
        store: SessionStore,
    ):
        self.config = config
        self.engine = engine
        self.store = store

        self.state = SessionState.UNINITIALIZED
        self.session_restored = False
        self._browser: Optional[AutomationBrowser] = None
        self._page: Optional[AutomationPage] = None
        self._generation = 0
        self._closing = False

        self._events: "asyncio.Queue[Tuple[SessionEvent, int]]" = asyncio.Queue()
        self._supervisor_task: Optional[asyncio.Task] = None

    @property
    def is_ready(self) -> bool:
        return self.state == SessionState.READY

    @property
    def browser_active(self) -> bool:
        return self._browser is not None

    @property
    def page_active(self) -> bool:
        return self._page is not None

    def current_page(self) -> AutomationPage:
        """Pagina corrente, solo se il browser è Ready"""
        if self.state != SessionState.READY or self._page is None:
            raise PageNotInitializedError("Browser page not initialized")
        return self._page

    async def initialize(self):
        """Lancia il browser, ripristina la sessione e marca Ready.

        Un errore di lancio viene propagato al chiamante senza retry.
        """
        previous_state = self.state
        self.state = SessionState.INITIALIZING
        logger.info("🔄 Inizializzazione browser...")

        try:
            browser = await self.engine.launch(
                headless=self.config.headless,
                viewport={
                    "width": self.config.viewport_width,
                    "height": self.config.viewport_height,
                },
                user_agent=self.config.user_agent,
                args=self.config.browser_args,
            )
        except Exception as e:
            self.state = previous_state
            logger.error(f"❌ Lancio browser fallito: {e}")
            raise

        # Anche CancelledError (close durante un reinit): il browser appena
        # lanciato non è ancora di nessuno e va chiuso qui
        try:
            existing = browser.pages()
            page = existing[0] if existing else await browser.new_page()
            self.session_restored = await self.store.restore(page, self.config.chatbot_url)
        except BaseException:
            self.state = previous_state
            await self._close_quietly(browser)
            raise

        self._generation += 1
        generation = self._generation
        self._browser = browser
        self._page = page
        self.state = SessionState.READY

        browser.on_disconnect(lambda: self._notify_disconnected(generation))
        self._ensure_supervisor()

        # Una disconnessione durante il restore non ha trovato subscriber
        if not browser.is_connected():
            logger.warning("⚠️ Browser già disconnesso al termine dell'inizializzazione")
            self._notify_disconnected(generation)
            return

        logger.info(f"✅ Browser inizializzato. Sessione ripristinata: {self.session_restored}")

    def _notify_disconnected(self, generation: int):
        """Callback del motore.

        Chiude subito il gate di readiness e delega il recovery al
        supervisore tramite la coda eventi.
        """
        if self._closing or generation != self._generation:
            return
        self.state = SessionState.DISCONNECTED
        self._events.put_nowait((SessionEvent.DISCONNECTED, generation))

    def _ensure_supervisor(self):
        if self._supervisor_task is None or self._supervisor_task.done():
            self._supervisor_task = asyncio.create_task(self._supervise())

    async def _supervise(self):
        """Consuma le notifiche del motore e gestisce il recovery"""
        while True:
            try:
                event, generation = await self._events.get()

                if self._closing:
                    continue
                if event is SessionEvent.DISCONNECTED and generation == self._generation:
                    await self._handle_disconnect()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Errore supervisore browser: {e}")

    async def _handle_disconnect(self):
        logger.error("❌ Browser disconnesso!")
        self.state = SessionState.DISCONNECTED

        browser = self._browser
        self._browser = None
        self._page = None
        if browser is not None:
            await self._close_quietly(browser)

        await self._reinitialize()

    async def _reinitialize(self):
        """Riprova l'inizializzazione a intervallo fisso, senza limite"""
        attempt = 0
        while not self._closing:
            attempt += 1
            await asyncio.sleep(self.config.reinit_delay)
            if self._closing:
                break

            logger.info(f"🔄 Tentativo di reinizializzazione #{attempt}")
            try:
                await self.initialize()
                return
            except Exception as e:
                logger.error(f"❌ Reinizializzazione fallita (tentativo #{attempt}): {e}")

    async def _close_quietly(self, browser: AutomationBrowser):
        try:
            await browser.close()
        except Exception as e:
            logger.warning(f"⚠️ Chiusura browser fallita: {e}")

    async def close(self):
        """Chiude il browser in modo intenzionale (shutdown)"""
        self._closing = True

        if self._supervisor_task and not self._supervisor_task.done():
            self._supervisor_task.cancel()
            try:
                await self._supervisor_task
            except asyncio.CancelledError:
                pass

        browser = self._browser
        self._browser = None
        self._page = None
        self.state = SessionState.UNINITIALIZED

        if browser is not None:
            await self._close_quietly(browser)
            logger.info("🛑 Browser chiuso")
