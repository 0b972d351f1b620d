"""Tests for browser host helpers that need no running browser."""
from __future__ import annotations

import os

from browser_relay.browser.manager import BrowserManager, release_profile_locks


def test_release_profile_locks_removes_crash_leftovers(tmp_path):
    os.symlink(tmp_path / "gone-host-1234", tmp_path / "SingletonLock")
    (tmp_path / "SingletonCookie").write_text("x")
    (tmp_path / "Preferences").write_text("{}")

    removed = release_profile_locks(tmp_path)

    assert sorted(removed) == ["SingletonCookie", "SingletonLock"]
    assert not os.path.lexists(tmp_path / "SingletonLock")
    assert (tmp_path / "Preferences").exists()


def test_release_profile_locks_on_clean_profile(tmp_path):
    assert release_profile_locks(tmp_path) == []


async def test_close_before_start_is_harmless(tmp_path):
    browser = BrowserManager(headless=True, profile_dir=tmp_path)
    await browser.close()
    await browser.wait_closed()
