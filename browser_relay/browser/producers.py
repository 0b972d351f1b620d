"""
Page producers — answer collector commands from a live patchright page.

Screenshots come from the page itself; cookies and storage are read from
inside the page with evaluate(), the same view the site's own scripts get.
"""

from __future__ import annotations

import base64
from typing import Any

from patchright.async_api import Page

from browser_relay.errors import ProducerError
from browser_relay.log import setup_logging
from browser_relay.models import Cookie

log = setup_logging("producers")

_COOKIES_JS = """
() => {
    if (!document.cookie.trim()) return [];
    return document.cookie.split(';')
        .map(c => c.trim())
        .filter(c => c)
        .map(c => {
            const eq = c.indexOf('=');
            if (eq === -1) return { name: c, value: '' };
            return { name: c.substring(0, eq), value: c.substring(eq + 1) };
        });
}
"""

_STORAGE_JS = """
(area) => {
    const store = area === 'session' ? window.sessionStorage : window.localStorage;
    const out = {};
    for (let i = 0; i < store.length; i++) {
        const key = store.key(i);
        out[key] = store.getItem(key);
    }
    return out;
}
"""

_ELEMENT_JS = """
(el) => {
    const rect = el.getBoundingClientRect();
    return {
        tagName: el.tagName,
        id: el.id,
        className: typeof el.className === 'string' ? el.className : '',
        textContent: (el.textContent || '').substring(0, 100),
        attributes: Array.from(el.attributes).map(a => ({ name: a.name, value: a.value })),
        dimensions: { width: rect.width, height: rect.height, top: rect.top, left: rect.left },
        innerHTML: el.innerHTML.substring(0, 500),
    };
}
"""


class PageProducers:
    """Screenshot, cookie, storage and element readers bound to one page."""

    def __init__(self, page: Page) -> None:
        self._page = page

    async def capture_screenshot(self) -> str:
        """Visible viewport as a ``data:image/png;base64,...`` URL."""
        try:
            png = await self._page.screenshot(type="png")
        except Exception as e:
            raise ProducerError(f"Screenshot capture failed: {e}") from e
        return "data:image/png;base64," + base64.b64encode(png).decode("ascii")

    async def read_cookies(self) -> list[dict[str, Any]]:
        try:
            raw = await self._page.evaluate(_COOKIES_JS)
        except Exception as e:
            raise ProducerError(f"Failed to get cookies: {e}") from e
        if not isinstance(raw, list):
            return []
        return [Cookie.model_validate(c).model_dump() for c in raw if isinstance(c, dict)]

    async def read_local_storage(self) -> dict[str, Any]:
        return await self._read_storage("local")

    async def read_session_storage(self) -> dict[str, Any]:
        return await self._read_storage("session")

    async def _read_storage(self, area: str) -> dict[str, Any]:
        try:
            result = await self._page.evaluate(_STORAGE_JS, area)
        except Exception as e:
            raise ProducerError(f"Failed to get {area}Storage: {e}") from e
        if not isinstance(result, dict):
            raise ProducerError(f"Failed to get {area}Storage")
        return result

    async def snapshot_element(self, selector: str) -> dict[str, Any] | None:
        """Describe the first element matching ``selector``, or None if absent."""
        handle = await self._page.query_selector(selector)
        if handle is None:
            log.warning(f"No element matches selector: {selector}")
            return None
        try:
            return await handle.evaluate(_ELEMENT_JS)
        finally:
            await handle.dispose()
