"""Browser session capability consumed by the interpreter and sampler."""

import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from perfcompare.errors import AutomationError, AutomationTimeoutError

# Installed before any page script runs. Holds the labelled timings that
# mark_timing() writes and read_performance_state() returns.
INSTRUMENTATION_SCRIPT = """
(() => {
  if (window.__perfCompareState) return;
  window.__perfCompareState = { customTimings: {} };
})()
"""


class Session(ABC):
    """Operations the core needs from a controllable browser session.

    Times are milliseconds. Implementations raise AutomationTimeoutError when
    a wait expires and AutomationError when the browser rejects an operation.
    """

    @property
    @abstractmethod
    def url(self) -> str:
        ...

    @abstractmethod
    async def goto(self, url: str, timeout: int, wait_until: str = "domcontentloaded") -> None:
        ...

    @abstractmethod
    async def wait_for_visible(self, selector: str, timeout: int) -> None:
        ...

    @abstractmethod
    async def wait_for_detached(self, selector: str, timeout: int) -> None:
        ...

    @abstractmethod
    async def click(self, selector: str) -> None:
        ...

    @abstractmethod
    async def clear(self, selector: str) -> None:
        ...

    @abstractmethod
    async def fill(self, selector: str, value: str) -> None:
        ...

    @abstractmethod
    async def count(self, selector: str) -> int:
        ...

    @abstractmethod
    async def focus(self, selector: str, index: int = 0) -> None:
        ...

    @abstractmethod
    async def blur(self, selector: str, index: int = 0) -> None:
        ...

    @abstractmethod
    async def set_input_files(self, selector: str, path: str) -> None:
        ...

    @abstractmethod
    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        ...

    @abstractmethod
    async def wait_for_function(self, expression: str, timeout: int) -> None:
        ...

    @abstractmethod
    async def wait_for_response(self, predicate: Callable[[str], bool], timeout: int) -> float:
        """Wait for a response whose URL satisfies ``predicate``; return elapsed ms."""

    @abstractmethod
    async def wait_for_url(self, predicate: Callable[[str], bool], timeout: int) -> None:
        """Wait until the page URL satisfies ``predicate``."""

    @abstractmethod
    async def wait_for_network_idle(self, timeout: int) -> None:
        ...

    @abstractmethod
    async def wait_for_timeout(self, ms: float) -> None:
        ...

    @abstractmethod
    async def mouse_move(self, x: float, y: float) -> None:
        ...

    @abstractmethod
    async def mouse_wheel(self, delta_x: float, delta_y: float) -> None:
        ...

    @abstractmethod
    async def keyboard_press(self, key: str) -> None:
        ...

    @abstractmethod
    async def install_instrumentation(self) -> None:
        ...

    @abstractmethod
    async def mark_timing(self, label: str) -> None:
        ...

    @abstractmethod
    async def read_performance_state(self) -> Optional[dict]:
        ...


@contextmanager
def _deadline(what: str):
    try:
        yield
    except PlaywrightTimeoutError as exc:
        raise AutomationTimeoutError(f"timed out waiting for {what}") from exc
    except PlaywrightError as exc:
        raise AutomationError(f"{what} failed: {exc.message}") from exc


class PlaywrightSession(Session):
    """Session backed by a Playwright async ``Page``.

    Every page call runs under ``_deadline`` so no raw Playwright error
    escapes a session method.
    """

    def __init__(self, page: Page):
        self.page = page
        self._instrumented = False

    @property
    def url(self) -> str:
        return self.page.url

    async def goto(self, url, timeout, wait_until="domcontentloaded"):
        with _deadline(f"navigation to {url}"):
            await self.page.goto(url, wait_until=wait_until, timeout=timeout)

    async def wait_for_visible(self, selector, timeout):
        with _deadline(f"{selector} to become visible"):
            await self.page.locator(selector).first.wait_for(state="visible", timeout=timeout)

    async def wait_for_detached(self, selector, timeout):
        with _deadline(f"{selector} to detach"):
            await self.page.locator(selector).first.wait_for(state="detached", timeout=timeout)

    async def click(self, selector):
        with _deadline(f"click on {selector}"):
            await self.page.locator(selector).first.click()

    async def clear(self, selector):
        with _deadline(f"clear of {selector}"):
            await self.page.locator(selector).first.clear()

    async def fill(self, selector, value):
        with _deadline(f"fill of {selector}"):
            await self.page.locator(selector).first.fill(value)

    async def count(self, selector):
        with _deadline(f"count of {selector}"):
            return await self.page.locator(selector).count()

    async def focus(self, selector, index=0):
        with _deadline(f"focus on {selector}"):
            await self.page.locator(selector).nth(index).focus()

    async def blur(self, selector, index=0):
        with _deadline(f"blur of {selector}"):
            await self.page.locator(selector).nth(index).blur()

    async def set_input_files(self, selector, path):
        with _deadline(f"file input {selector}"):
            await self.page.locator(selector).first.set_input_files(path)

    async def evaluate(self, expression, arg=None):
        with _deadline("page script"):
            return await self.page.evaluate(expression, arg)

    async def wait_for_function(self, expression, timeout):
        with _deadline(f"condition {expression!r}"):
            await self.page.wait_for_function(expression, timeout=timeout)

    async def wait_for_response(self, predicate, timeout):
        start = time.monotonic()
        with _deadline("matching response"):
            await self.page.wait_for_event(
                "response", predicate=lambda response: predicate(response.url), timeout=timeout
            )
        return (time.monotonic() - start) * 1000

    async def wait_for_url(self, predicate, timeout):
        with _deadline("URL change"):
            await self.page.wait_for_url(predicate, timeout=timeout)

    async def wait_for_network_idle(self, timeout):
        with _deadline("network idle"):
            await self.page.wait_for_load_state("networkidle", timeout=timeout)

    async def wait_for_timeout(self, ms):
        with _deadline("pause"):
            await self.page.wait_for_timeout(ms)

    async def mouse_move(self, x, y):
        with _deadline("mouse move"):
            await self.page.mouse.move(x, y)

    async def mouse_wheel(self, delta_x, delta_y):
        with _deadline("mouse wheel"):
            await self.page.mouse.wheel(delta_x, delta_y)

    async def keyboard_press(self, key):
        with _deadline(f"key press {key}"):
            await self.page.keyboard.press(key)

    async def install_instrumentation(self):
        with _deadline("instrumentation"):
            if not self._instrumented:
                await self.page.add_init_script(script=INSTRUMENTATION_SCRIPT)
                self._instrumented = True
            # add_init_script only affects later navigations.
            await self.page.evaluate(INSTRUMENTATION_SCRIPT)

    async def mark_timing(self, label):
        with _deadline(f"timing mark {label}"):
            await self.page.evaluate(
                "(label) => { const s = window.__perfCompareState;"
                " if (s) s.customTimings[label] = performance.now(); }",
                label,
            )

    async def read_performance_state(self) -> Optional[dict]:
        with _deadline("performance state"):
            return await self.page.evaluate("() => window.__perfCompareState || null")
