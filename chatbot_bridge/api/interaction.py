"""
# @file purpose: Protocollo di interazione con la chat web

Sequenza fissa di operazioni UI per ottenere una risposta:
navigazione -> pulizia input -> inserimento prompt -> invio ->
attesa completamento -> estrazione testo. Se la risposta estratta è
vuota viene salvato uno snapshot diagnostico della pagina.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .automation import AutomationPage
from .config import Selectors, Timeouts
from .diagnostics import DiagnosticsStore
from .errors import AutomationFailure, AutomationTimeout

logger = logging.getLogger(__name__)

PLAIN_INPUT_TAGS = ("textarea", "input")

EXTRACT_RESPONSE_JS = """([responseSel, contentSel]) => {
    const entries = document.querySelectorAll(responseSel);
    if (entries.length === 0) return '';
    const last = entries[entries.length - 1];
    const content = contentSel ? last.querySelector(contentSel) : null;
    if (content) {
        const text = content.innerText || content.textContent || '';
        if (text.trim()) return text.trim();
    }
    return (last.innerText || last.textContent || '').trim();
}"""


@dataclass(frozen=True)
class PlainInput:
    """Campo textarea/input: si lavora sulla proprietà value"""
    selector: str

    # Setter nativo: React intercetta l'assegnazione diretta di value
    CLEAR_JS = """(sel) => {
        const el = document.querySelector(sel);
        if (!el) return false;
        const proto = el.tagName === 'TEXTAREA'
            ? HTMLTextAreaElement.prototype
            : HTMLInputElement.prototype;
        const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
        setter.call(el, '');
        el.dispatchEvent(new Event('input', { bubbles: true }));
        return true;
    }"""

    INSERT_JS = """([sel, text]) => {
        const el = document.querySelector(sel);
        if (!el) return false;
        const proto = el.tagName === 'TEXTAREA'
            ? HTMLTextAreaElement.prototype
            : HTMLInputElement.prototype;
        const setter = Object.getOwnPropertyDescriptor(proto, 'value')?.set;
        if (!setter) return false;
        el.focus();
        setter.call(el, text);
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
        return true;
    }"""

    async def clear(self, page: AutomationPage) -> None:
        await page.evaluate(self.CLEAR_JS, self.selector)

    async def insert(self, page: AutomationPage, text: str) -> None:
        filled = await page.evaluate(self.INSERT_JS, [self.selector, text])
        if not filled:
            logger.warning("⚠️ Setter nativo non disponibile, digitazione del prompt")
            await page.type_text(self.selector, text)


@dataclass(frozen=True)
class RichTextInput:
    """Contenitore contenteditable: si lavora sul contenuto DOM"""
    selector: str

    CLEAR_JS = """(sel) => {
        const el = document.querySelector(sel);
        if (!el) return false;
        el.innerHTML = '';
        el.dispatchEvent(new Event('input', { bubbles: true }));
        return true;
    }"""

    # Un paragrafo per riga, così gli a capo sopravvivono
    INSERT_JS = """([sel, text]) => {
        const el = document.querySelector(sel);
        if (!el) return false;
        el.focus();
        el.innerHTML = '';
        for (const line of text.split('\\n')) {
            const p = document.createElement('p');
            if (line) {
                p.textContent = line;
            } else {
                p.appendChild(document.createElement('br'));
            }
            el.appendChild(p);
        }
        el.dispatchEvent(new InputEvent('input', {
            bubbles: true, inputType: 'insertText', data: text
        }));
        return true;
    }"""

    async def clear(self, page: AutomationPage) -> None:
        await page.evaluate(self.CLEAR_JS, self.selector)

    async def insert(self, page: AutomationPage, text: str) -> None:
        inserted = await page.evaluate(self.INSERT_JS, [self.selector, text])
        if not inserted:
            raise AutomationFailure(f"Input '{self.selector}' non trovato")


InputSurface = Union[PlainInput, RichTextInput]


def detect_input_surface(selector: str, tag: Optional[str]) -> InputSurface:
    """Sceglie la strategia di input in base al tag dell'elemento"""
    if tag and tag.lower() in PLAIN_INPUT_TAGS:
        return PlainInput(selector)
    return RichTextInput(selector)


class ChatInteraction:
    """Esegue un singolo scambio prompt/risposta sulla pagina corrente"""

    def __init__(
        self,
        page_provider: Callable[[], AutomationPage],
        chatbot_url: str,
        selectors: Selectors,
        timeouts: Timeouts,
        diagnostics: Optional[DiagnosticsStore] = None,
    ):
        self.page_provider = page_provider
        self.chatbot_url = chatbot_url
        self.selectors = selectors
        self.timeouts = timeouts
        self.diagnostics = diagnostics

    async def ask(self, prompt: str) -> str:
        """Invia il prompt e ritorna il testo della risposta.

        Solleva PageNotInitializedError se il browser non è Ready e
        AutomationFailure per qualsiasi step fallito. Nessun retry qui:
        la politica di retry spetta al chiamante.
        """
        page = self.page_provider()

        try:
            await page.navigate(self.chatbot_url, self.timeouts.navigation)

            surface = await self._prepare_input(page)
            await surface.insert(page, prompt)
            await asyncio.sleep(self.timeouts.input_settle / 1000)

            await self._submit(page)
            await self._wait_for_completion(page)

            answer = await page.evaluate(
                EXTRACT_RESPONSE_JS,
                [self.selectors.response, self.selectors.response_content]
            )
        except Exception as e:
            raise AutomationFailure(f"Failed to get response: {e}") from e

        answer = (answer or "").strip()

        if not answer:
            logger.warning("⚠️ Risposta vuota, salvataggio snapshot diagnostico")
            await self._capture_diagnostics(page, prompt)

        return answer

    async def _prepare_input(self, page: AutomationPage) -> InputSurface:
        await page.wait_for_element(self.selectors.input, self.timeouts.selector)

        tag = await page.element_tag(self.selectors.input)
        surface = detect_input_surface(self.selectors.input, tag)
        logger.debug(f"Input '{self.selectors.input}' rilevato come {type(surface).__name__}")

        await surface.clear(page)
        return surface

    async def _submit(self, page: AutomationPage):
        if await page.is_enabled(self.selectors.submit_button):
            await page.click(self.selectors.submit_button)
        else:
            await page.press_key("Enter")

    async def _wait_for_completion(self, page: AutomationPage):
        """Attende la fine della generazione.

        Se l'indicatore di stop compare entro la finestra di grazia si
        attende la sua scomparsa; altrimenti si usa un'attesa fissa.
        """
        try:
            await page.wait_for_element(
                self.selectors.stop_button,
                self.timeouts.indicator_grace,
                state="visible"
            )
        except AutomationTimeout:
            logger.debug("Indicatore di generazione non rilevato, attesa fissa")
            await asyncio.sleep(self.timeouts.fallback_settle / 1000)
            return

        await page.wait_for_element(
            self.selectors.stop_button,
            self.timeouts.response,
            state="hidden"
        )

    async def _capture_diagnostics(self, page: AutomationPage, prompt: str):
        if self.diagnostics is None:
            return
        try:
            await self.diagnostics.capture(
                page,
                label="empty-response",
                metadata={"prompt_length": len(prompt), "url": page.url}
            )
        except Exception as e:
            logger.error(f"❌ Snapshot diagnostico fallito: {e}")
