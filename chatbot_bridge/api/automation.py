"""
# @file purpose: Adapter verso il motore di automazione browser

Interfaccia astratta usata dal resto del servizio (navigate, wait, click,
evaluate, cookies, screenshot) e implementazione concreta su Playwright.
Il core non importa mai Playwright direttamente.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeout,
    async_playwright,
)

from .errors import AutomationTimeout

logger = logging.getLogger(__name__)

# Nasconde i segnali più evidenti di automazione
STEALTH_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
window.chrome = window.chrome || {runtime: {}};
"""


class AutomationPage(ABC):
    """Handle di una singola pagina del browser"""

    @abstractmethod
    async def navigate(self, url: str, timeout_ms: int) -> None:
        """Naviga all'URL attendendo la rete inattiva"""

    @abstractmethod
    async def reload(self, timeout_ms: int) -> None:
        ...

    @abstractmethod
    async def wait_for_element(self, selector: str, timeout_ms: int, state: str = "visible") -> None:
        """Attende che l'elemento raggiunga lo stato richiesto.

        Solleva AutomationTimeout se il budget scade.
        """

    @abstractmethod
    async def element_tag(self, selector: str) -> Optional[str]:
        """Tag name (minuscolo) del primo elemento, None se assente"""

    @abstractmethod
    async def is_enabled(self, selector: str) -> bool:
        """True se l'elemento esiste ed è abilitato"""

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    @abstractmethod
    async def press_key(self, key: str) -> None:
        ...

    @abstractmethod
    async def type_text(self, selector: str, text: str) -> None:
        ...

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        ...

    @abstractmethod
    async def cookies(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        ...

    @abstractmethod
    async def screenshot(self, path: Path) -> None:
        ...

    @abstractmethod
    async def content(self) -> str:
        """Markup completo della pagina"""

    @property
    @abstractmethod
    def url(self) -> str:
        ...


class AutomationBrowser(ABC):
    """Istanza browser lanciata dal motore"""

    @abstractmethod
    def pages(self) -> List[AutomationPage]:
        """Pagine già aperte"""

    @abstractmethod
    async def new_page(self) -> AutomationPage:
        ...

    @abstractmethod
    def on_disconnect(self, callback: Callable[[], None]) -> None:
        """Registra l'unico subscriber della notifica di disconnessione"""

    @abstractmethod
    def is_connected(self) -> bool:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class AutomationEngine(ABC):
    """Motore capace di lanciare un browser"""

    @abstractmethod
    async def launch(
        self,
        headless: bool,
        viewport: Dict[str, int],
        user_agent: str,
        args: List[str],
    ) -> AutomationBrowser:
        ...


class PlaywrightPage(AutomationPage):
    """Pagina Playwright"""

    def __init__(self, page: Page):
        self._page = page

    async def navigate(self, url: str, timeout_ms: int) -> None:
        await self._page.goto(url, wait_until="networkidle", timeout=timeout_ms)

    async def reload(self, timeout_ms: int) -> None:
        await self._page.reload(wait_until="networkidle", timeout=timeout_ms)

    async def wait_for_element(self, selector: str, timeout_ms: int, state: str = "visible") -> None:
        try:
            await self._page.wait_for_selector(selector, state=state, timeout=timeout_ms)
        except PlaywrightTimeout as e:
            raise AutomationTimeout(f"Timeout {timeout_ms}ms in attesa di '{selector}' ({state})") from e

    async def element_tag(self, selector: str) -> Optional[str]:
        handle = await self._page.query_selector(selector)
        if handle is None:
            return None
        tag = await handle.evaluate("el => el.tagName")
        return str(tag).lower()

    async def is_enabled(self, selector: str) -> bool:
        handle = await self._page.query_selector(selector)
        if handle is None:
            return False
        return await handle.is_enabled()

    async def click(self, selector: str) -> None:
        await self._page.click(selector)

    async def press_key(self, key: str) -> None:
        await self._page.keyboard.press(key)

    async def type_text(self, selector: str, text: str) -> None:
        await self._page.type(selector, text)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self._page.evaluate(script)
        return await self._page.evaluate(script, arg)

    async def cookies(self) -> List[Dict[str, Any]]:
        return [dict(cookie) for cookie in await self._page.context.cookies()]

    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        if cookies:
            await self._page.context.add_cookies(cookies)

    async def screenshot(self, path: Path) -> None:
        await self._page.screenshot(path=str(path), full_page=True)

    async def content(self) -> str:
        return await self._page.content()

    @property
    def url(self) -> str:
        return self._page.url


class PlaywrightBrowser(AutomationBrowser):
    """Browser Chromium con un unico contesto"""

    def __init__(self, playwright: Playwright, browser: Browser, context: BrowserContext):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._disconnect_callback: Optional[Callable[[], None]] = None
        self._browser.on("disconnected", self._handle_disconnected)

    def _handle_disconnected(self, _browser: Browser) -> None:
        if self._disconnect_callback is not None:
            self._disconnect_callback()

    def pages(self) -> List[AutomationPage]:
        return [PlaywrightPage(page) for page in self._context.pages]

    async def new_page(self) -> AutomationPage:
        return PlaywrightPage(await self._context.new_page())

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self._disconnect_callback = callback

    def is_connected(self) -> bool:
        return self._browser.is_connected()

    async def close(self) -> None:
        try:
            if self._browser.is_connected():
                await self._context.close()
                await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightEngine(AutomationEngine):
    """Lancia Chromium tramite Playwright"""

    async def launch(
        self,
        headless: bool,
        viewport: Dict[str, int],
        user_agent: str,
        args: List[str],
    ) -> AutomationBrowser:
        playwright = await async_playwright().start()
        try:
            browser = await playwright.chromium.launch(headless=headless, args=args)
            context = await browser.new_context(viewport=viewport, user_agent=user_agent)
            await context.add_init_script(STEALTH_INIT_SCRIPT)
        except Exception:
            await playwright.stop()
            raise

        logger.info(f"🚀 Chromium avviato (headless={headless})")
        return PlaywrightBrowser(playwright, browser, context)
