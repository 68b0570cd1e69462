"""
# @file purpose: Orchestratore del servizio chatbot-bridge

Unico proprietario dello stato mutabile del processo: browser, coda,
sessione, monitoring. Il layer HTTP legge lo stato solo attraverso gli
accessor di questa classe.
"""

import logging
from typing import Any, Dict, Optional

from .automation import AutomationEngine, PlaywrightEngine
from .config import ServiceConfig
from .diagnostics import DiagnosticsStore
from .errors import AutomationFailure, NotReadyError, PersistenceFailure
from .interaction import ChatInteraction
from .monitoring import RequestMonitor, RequestStatus
from .request_queue import QueuedRequest, RequestQueue, new_request_id
from .session_manager import BrowserSessionManager
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class ChatbotService:
    """Collega coda, browser e protocollo di interazione"""

    def __init__(
        self,
        config: ServiceConfig,
        engine: Optional[AutomationEngine] = None,
        monitor: Optional[RequestMonitor] = None,
    ):
        self.config = config
        self.store = SessionStore(config.session_file, config.timeouts.navigation)
        self.diagnostics = DiagnosticsStore(config.diagnostics_dir)
        self.sessions = BrowserSessionManager(config, engine or PlaywrightEngine(), self.store)
        self.interaction = ChatInteraction(
            page_provider=self.sessions.current_page,
            chatbot_url=config.chatbot_url,
            selectors=config.selectors,
            timeouts=config.timeouts,
            diagnostics=self.diagnostics,
        )
        self.queue = RequestQueue(self._handle_request, cooldown=config.request_delay)
        self.monitor = monitor or RequestMonitor()
        self._shutting_down = False

    def is_ready(self) -> bool:
        return self.sessions.is_ready and not self._shutting_down

    def queue_length(self) -> int:
        return len(self.queue)

    def browser_active(self) -> bool:
        return self.sessions.browser_active

    def page_active(self) -> bool:
        return self.sessions.page_active

    def get_status(self) -> Dict[str, Any]:
        return {
            "initialized": self.is_ready(),
            "queueLength": self.queue_length(),
            "browserActive": self.browser_active(),
            "pageActive": self.page_active(),
            "state": self.sessions.state.value,
            "sessionRestored": self.sessions.session_restored,
            "requests": self.monitor.get_system_stats(),
            "diagnostics": self.diagnostics.get_storage_stats(),
        }

    async def start(self):
        """Inizializza il browser e avvia il monitoring"""
        logger.info(f"🚀 Avvio servizio - Chatbot URL: {self.config.chatbot_url}")
        logger.info(f"🤖 Headless mode: {self.config.headless}")

        self.diagnostics.cleanup_old_captures()
        await self.sessions.initialize()
        await self.monitor.start_monitoring()

    async def submit(self, prompt: str) -> str:
        """Accoda il prompt e attende la risposta"""
        if not self.is_ready():
            raise NotReadyError("Browser not initialized")

        request_id = new_request_id()
        self.monitor.register_request(request_id, len(prompt))
        return await self.queue.submit(prompt, request_id=request_id)

    async def _handle_request(self, item: QueuedRequest) -> str:
        self.monitor.update_request_status(item.request_id, RequestStatus.RUNNING)
        try:
            answer = await self.interaction.ask(item.prompt)
        except Exception as e:
            self.monitor.update_request_status(item.request_id, RequestStatus.ERROR, str(e))
            raise

        self.monitor.update_request_status(item.request_id, RequestStatus.COMPLETED)
        return answer

    async def save_session(self):
        """Salva la sessione corrente.

        Solleva PageNotInitializedError o PersistenceFailure: chi chiama
        decide se l'errore è fatale.
        """
        page = self.sessions.current_page()
        return await self.store.save(page)

    async def shutdown(self):
        """Drena la coda, salva la sessione e chiude il browser"""
        logger.info("🛑 Shutdown in corso...")
        self._shutting_down = True

        await self.queue.drain()

        try:
            await self.save_session()
        except (PersistenceFailure, AutomationFailure) as e:
            logger.error(f"❌ Salvataggio sessione allo shutdown fallito: {e}")

        await self.sessions.close()
        await self.monitor.stop_monitoring()
        logger.info("👋 Shutdown completato")
