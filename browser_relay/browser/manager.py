"""
Browser host — one persistent Chromium profile for the inspected site.

The profile is persistent on purpose: cookies and storage survive between
runs, and those are exactly what the collector asks for.
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

from patchright.async_api import BrowserContext, Error, Page, Playwright, async_playwright

from browser_relay.config import Config
from browser_relay.log import setup_logging

log = setup_logging("browser")

# Installed Chrome first, then the Chromium bundled with patchright
LAUNCH_CHANNELS: tuple[str | None, ...] = ("chrome", None)

PROFILE_LOCKS = ("SingletonLock", "SingletonSocket", "SingletonCookie")


def release_profile_locks(profile_dir: Path) -> list[str]:
    """Delete lock files a crashed Chromium left in ``profile_dir``. Returns the names removed."""
    removed = []
    for name in PROFILE_LOCKS:
        lock = profile_dir / name
        # SingletonLock is a dangling symlink after a crash, exists() is False
        if not (lock.exists() or lock.is_symlink()):
            continue
        try:
            lock.unlink()
            removed.append(name)
        except OSError as e:
            log.warning(f"Could not remove {name}: {e}")
    if removed:
        log.info(f"Released stale profile locks: {', '.join(removed)}")
    return removed


class BrowserManager:
    """Owns the patchright driver, the persistent context and its first page."""

    def __init__(self, headless: bool | None = None, profile_dir: Path | None = None) -> None:
        self._headless = Config.HEADLESS if headless is None else headless
        self._profile_dir = profile_dir or Config.BROWSER_DATA_DIR
        self._driver: Playwright | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None
        self._closed = asyncio.Event()

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser not started")
        return self._page

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser not started")
        return self._context

    async def start(self) -> Page:
        """Launch the profile and return the page whose telemetry is relayed."""
        self._profile_dir.mkdir(parents=True, exist_ok=True)
        release_profile_locks(self._profile_dir)

        self._driver = await async_playwright().start()
        self._context = await self._launch(self._driver)
        self._context.on("close", lambda _: self._closed.set())

        self._page = self._context.pages[0] if self._context.pages else await self._context.new_page()
        self._page.on("close", lambda _: self._closed.set())
        log.info(f"Browser ready (headless={self._headless}, profile={self._profile_dir})")
        return self._page

    async def _launch(self, driver: Playwright) -> BrowserContext:
        args = ["--no-first-run", "--no-default-browser-check"]
        if os.path.exists("/.dockerenv"):
            args += ["--no-sandbox", "--disable-gpu"]

        options = {
            "user_data_dir": str(self._profile_dir),
            "headless": self._headless,
            "slow_mo": Config.SLOW_MO,
            "viewport": {"width": Config.VIEWPORT_WIDTH, "height": Config.VIEWPORT_HEIGHT},
            "args": args,
        }

        last_error: Error | None = None
        for channel in LAUNCH_CHANNELS:
            label = channel or "bundled chromium"
            try:
                if channel:
                    context = await driver.chromium.launch_persistent_context(channel=channel, **options)
                else:
                    context = await driver.chromium.launch_persistent_context(**options)
            except Error as e:
                log.info(f"Launch with {label} failed: {e.message.splitlines()[0] if e.message else e}")
                last_error = e
                continue
            log.info(f"Launched {label}")
            return context
        raise RuntimeError(f"No usable Chromium build: {last_error}")

    async def navigate(self, url: str) -> None:
        log.info(f"Opening {url}")
        await self.page.goto(url, wait_until="domcontentloaded")

    async def wait_closed(self) -> None:
        """Block until the user closes the page or the whole browser."""
        await self._closed.wait()

    async def close(self) -> None:
        context, driver = self._context, self._driver
        self._context = self._page = self._driver = None
        try:
            if context is not None:
                await context.close()
        except Error as e:
            log.warning(f"Error closing browser context: {e}")
        finally:
            if driver is not None:
                await driver.stop()
            self._closed.set()
            log.info("Browser closed")
