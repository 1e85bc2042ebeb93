"""Screenshot capture — renders each target per viewport, checks and masks
configured elements, and returns the full-page screenshot as a raster."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from snapwatch.models.config import TargetConfig, ViewportConfig
from snapwatch.models.raster import Raster

from .browser import create_viewport_context, launch_browser

logger = logging.getLogger(__name__)

# Flags each selector that is missing, collapsed (<= 10px) or empty, then
# blacks it out so its content never shows up in a diff.
_MASK_SCRIPT = """
(selectors) => {
  const problems = [];
  for (const selector of selectors) {
    let el = null;
    try {
      el = document.querySelector(selector);
    } catch (e) {
      problems.push(`Mask check failed: invalid selector ${selector}`);
      continue;
    }
    if (!el || el.clientHeight <= 10 || el.children.length === 0) {
      problems.push(`Mask check failed: ${selector} did not load.`);
    }
    if (el) {
      el.style.backgroundColor = '#000000';
      el.style.color = '#000000';
      for (const child of el.children) {
        child.style.visibility = 'hidden';
      }
    }
  }
  return problems;
}
"""


@dataclass
class CaptureResult:
    image: Optional[Raster]
    diagnostics: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.image is not None


class Capturer(Protocol):
    async def __aenter__(self) -> "Capturer": ...

    async def __aexit__(self, *exc) -> None: ...

    async def capture(self, target: TargetConfig, viewport: ViewportConfig) -> CaptureResult: ...


async def verify_and_mask(page: Page, selectors: list[str]) -> list[str]:
    """Check each mask selector on the page, mask it, and return any problems found."""
    if not selectors:
        return []
    problems = await page.evaluate(_MASK_SCRIPT, selectors)
    for p in problems:
        logger.warning("  %s", p)
    return list(problems)


class PlaywrightCapturer:
    """Captures screenshots with a single Chromium instance per run."""

    def __init__(
        self,
        navigation_timeout_ms: int = 60000,
        headless: bool = True,
        user_agent: Optional[str] = None,
    ):
        self.navigation_timeout_ms = navigation_timeout_ms
        self.headless = headless
        self.user_agent = user_agent
        self._playwright = None
        self._browser = None

    async def __aenter__(self) -> "PlaywrightCapturer":
        self._playwright = await async_playwright().start()
        self._browser = await launch_browser(self._playwright, headless=self.headless)
        logger.debug("Chromium launched for capture")
        return self

    async def __aexit__(self, *exc) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        logger.debug("Chromium closed")

    async def capture(self, target: TargetConfig, viewport: ViewportConfig) -> CaptureResult:
        """Render ``target`` at ``viewport`` and return the screenshot plus diagnostics."""
        if self._browser is None:
            raise RuntimeError("PlaywrightCapturer must be used as an async context manager")

        logger.info("Navigating to %s [%s]", target.url, viewport.label)
        context = await create_viewport_context(self._browser, viewport, self.user_agent)
        try:
            page = await context.new_page()
            try:
                await page.goto(target.url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
            except PlaywrightError as e:
                logger.error("Navigation failed for %s: %s", target.url, e)
                return CaptureResult(image=None, diagnostics=[f"Navigation failed: {e}"])

            if target.wait_time_ms:
                await page.wait_for_timeout(target.wait_time_ms)

            diagnostics = await verify_and_mask(page, target.mask_selectors)
            try:
                payload = await page.screenshot(type="png", full_page=True, animations="disabled")
            except PlaywrightError as e:
                logger.error("Screenshot failed for %s [%s]: %s", target.url, viewport.name, e)
                return CaptureResult(image=None, diagnostics=diagnostics + [f"Screenshot failed: {e}"])

            image = Raster.from_png(payload)
            logger.debug("Captured %dx%d screenshot of %s", image.width, image.height, target.url)
            return CaptureResult(image=image, diagnostics=diagnostics)
        finally:
            await context.close()
