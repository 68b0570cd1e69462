"""Shared fakes of the browser automation adapter."""

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from chatbot_bridge.api.automation import AutomationBrowser, AutomationEngine, AutomationPage
from chatbot_bridge.api.config import Selectors, ServiceConfig, Timeouts
from chatbot_bridge.api.errors import AutomationTimeout
from chatbot_bridge.api.interaction import EXTRACT_RESPONSE_JS, PlainInput, RichTextInput
from chatbot_bridge.api.session_store import READ_LOCAL_STORAGE_JS, WRITE_LOCAL_STORAGE_JS

STOP_SELECTOR = Selectors.stop_button

Answer = Union[str, Callable[[str], str]]


class FakePage(AutomationPage):
    """In-memory page that records every call made by the service."""

    def __init__(
        self,
        tag: str = "textarea",
        answer: Answer = "Hello from the bot",
        submit_enabled: bool = True,
        indicator: bool = True,
        native_setter: bool = True,
        cookies: Optional[List[Dict[str, Any]]] = None,
        storage: Optional[Dict[str, str]] = None,
        hang_navigate: bool = False,
        disconnect_on_navigate: bool = False,
    ):
        self.tag = tag
        self.answer = answer
        self.submit_enabled = submit_enabled
        self.indicator = indicator
        self.native_setter = native_setter
        self.cookie_jar: List[Dict[str, Any]] = list(cookies or [])
        self.storage: Dict[str, str] = dict(storage or {})
        self.hang_navigate = hang_navigate
        self.disconnect_on_navigate = disconnect_on_navigate
        self.browser: Optional["FakeBrowser"] = None

        self.calls: List[tuple] = []
        self.input_value = ""
        self.submitted: List[str] = []
        self.fail_on: Optional[str] = None
        self.screenshot_error: Optional[Exception] = None
        self._url = "about:blank"

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        if self.fail_on == name:
            raise RuntimeError(f"{name} exploded")

    def call_names(self) -> List[str]:
        return [call[0] for call in self.calls]

    async def navigate(self, url: str, timeout_ms: int) -> None:
        self._record("navigate", url)
        self._url = url
        if self.disconnect_on_navigate and self.browser is not None:
            self.browser.trigger_disconnect()
        if self.hang_navigate:
            await asyncio.Event().wait()

    async def reload(self, timeout_ms: int) -> None:
        self._record("reload")

    async def wait_for_element(self, selector: str, timeout_ms: int, state: str = "visible") -> None:
        self._record("wait_for_element", selector, state)
        if selector == STOP_SELECTOR and state == "visible" and not self.indicator:
            raise AutomationTimeout(f"Timeout waiting for {selector}")

    async def element_tag(self, selector: str) -> Optional[str]:
        self._record("element_tag", selector)
        return self.tag

    async def is_enabled(self, selector: str) -> bool:
        self._record("is_enabled", selector)
        return self.submit_enabled

    async def click(self, selector: str) -> None:
        self._record("click", selector)
        self.submitted.append(self.input_value)

    async def press_key(self, key: str) -> None:
        self._record("press_key", key)
        self.submitted.append(self.input_value)

    async def type_text(self, selector: str, text: str) -> None:
        self._record("type_text", selector)
        self.input_value = text

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if script == READ_LOCAL_STORAGE_JS:
            self._record("read_storage")
            return dict(self.storage)
        if script == WRITE_LOCAL_STORAGE_JS:
            self._record("write_storage")
            self.storage.update(arg)
            return None
        if script in (PlainInput.CLEAR_JS, RichTextInput.CLEAR_JS):
            self._record("clear_input", script)
            self.input_value = ""
            return True
        if script == PlainInput.INSERT_JS:
            self._record("insert_input", script)
            if not self.native_setter:
                return False
            self.input_value = arg[1]
            return True
        if script == RichTextInput.INSERT_JS:
            self._record("insert_input", script)
            self.input_value = arg[1]
            return True
        if script == EXTRACT_RESPONSE_JS:
            self._record("extract")
            prompt = self.submitted[-1] if self.submitted else ""
            return self.answer(prompt) if callable(self.answer) else self.answer
        raise AssertionError(f"unexpected script: {script[:40]}")

    async def cookies(self) -> List[Dict[str, Any]]:
        self._record("cookies")
        return [dict(cookie) for cookie in self.cookie_jar]

    async def set_cookies(self, cookies: List[Dict[str, Any]]) -> None:
        self._record("set_cookies")
        self.cookie_jar.extend(dict(cookie) for cookie in cookies)

    async def screenshot(self, path: Path) -> None:
        self._record("screenshot")
        if self.screenshot_error:
            raise self.screenshot_error
        Path(path).write_bytes(b"\x89PNG fake")

    async def content(self) -> str:
        self._record("content")
        return "<html><body>empty</body></html>"

    @property
    def url(self) -> str:
        return self._url


class FakeBrowser(AutomationBrowser):
    def __init__(self, page: FakePage, preopened: bool = True):
        self.page = page
        page.browser = self
        self._pages = [page] if preopened else []
        self.new_page_calls = 0
        self.callback: Optional[Callable[[], None]] = None
        self.connected = True
        self.closed = False

    def pages(self) -> List[AutomationPage]:
        return list(self._pages)

    async def new_page(self) -> AutomationPage:
        self.new_page_calls += 1
        self._pages.append(self.page)
        return self.page

    def on_disconnect(self, callback: Callable[[], None]) -> None:
        self.callback = callback

    def is_connected(self) -> bool:
        return self.connected

    async def close(self) -> None:
        self.closed = True
        self.connected = False

    def trigger_disconnect(self):
        """Like the real engine: the event is lost when nobody subscribed yet."""
        self.connected = False
        if self.callback is not None:
            self.callback()


class FakeEngine(AutomationEngine):
    def __init__(
        self,
        page_factory: Callable[[], FakePage] = FakePage,
        fail_launches: int = 0,
        preopened: bool = True,
    ):
        self.page_factory = page_factory
        self.fail_launches = fail_launches
        self.preopened = preopened
        self.launches: List[FakeBrowser] = []
        self.launch_attempts = 0
        self.launch_kwargs: Dict[str, Any] = {}

    async def launch(self, headless, viewport, user_agent, args) -> AutomationBrowser:
        self.launch_attempts += 1
        self.launch_kwargs = {
            "headless": headless,
            "viewport": viewport,
            "user_agent": user_agent,
            "args": args,
        }
        if self.fail_launches > 0:
            self.fail_launches -= 1
            raise RuntimeError("chromium failed to start")

        browser = FakeBrowser(self.page_factory(), preopened=self.preopened)
        self.launches.append(browser)
        return browser

    @property
    def latest(self) -> FakeBrowser:
        return self.launches[-1]


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """Poll *predicate* until true; generous bounds keep timing tests stable."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(
        chatbot_url="https://chat.example.com/",
        session_file=tmp_path / "session.json",
        diagnostics_dir=tmp_path / "diagnostics",
        request_delay=0,
        reinit_delay=0.01,
        timeouts=Timeouts(input_settle=0, fallback_settle=10, indicator_grace=50),
    )


@pytest.fixture
def engine():
    return FakeEngine()
