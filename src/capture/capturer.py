"""Screenshot capture — drives Playwright browsers for every page and user agent."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from dataclasses import dataclass, field
from typing import Iterable
from urllib.parse import urljoin

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from src.errors import CaptureFailure
from src.models.capture import Captured, CaptureOutcome, Failed, NotAttempted
from src.models.config import ShotdiffConfig, UserAgentConfig
from src.models.golden import ScreenshotIdentity
from src.storage.asset_store import LocalAssetStore

logger = logging.getLogger(__name__)


def build_targets(config: ShotdiffConfig) -> list[ScreenshotIdentity]:
    """Every configured page in every configured user agent, disabled agents included."""
    return sorted(
        ScreenshotIdentity(page=page, user_agent=ua.alias)
        for page in config.pages
        for ua in config.user_agents
    )


def page_url(base_url: str, page: str) -> str:
    return urljoin(base_url.rstrip("/") + "/", page.lstrip("/"))


@dataclass
class CaptureFilter:
    """fnmatch patterns restricting which targets are captured in this run."""
    pages: list[str] = field(default_factory=list)
    user_agents: list[str] = field(default_factory=list)

    def matches(self, identity: ScreenshotIdentity) -> bool:
        if self.pages and not any(fnmatch.fnmatch(identity.page, p) for p in self.pages):
            return False
        if self.user_agents and not any(
            fnmatch.fnmatch(identity.user_agent, p) for p in self.user_agents
        ):
            return False
        return True


class PlaywrightCaptureProvider:
    """Captures screenshots concurrently, returning an outcome for every requested identity."""

    def __init__(
        self,
        config: ShotdiffConfig,
        asset_store: LocalAssetStore | None = None,
        capture_filter: CaptureFilter | None = None,
    ):
        self.config = config
        self.asset_store = asset_store
        self.capture_filter = capture_filter or CaptureFilter()

    def capture_sync(self, targets: Iterable[ScreenshotIdentity]) -> dict[ScreenshotIdentity, CaptureOutcome]:
        return asyncio.run(self.capture(targets))

    async def capture(self, targets: Iterable[ScreenshotIdentity]) -> dict[ScreenshotIdentity, CaptureOutcome]:
        outcomes: dict[ScreenshotIdentity, CaptureOutcome] = {}
        pending: list[tuple[ScreenshotIdentity, UserAgentConfig]] = []

        for identity in targets:
            ua = self.config.user_agent(identity.user_agent)
            if ua is None:
                outcomes[identity] = NotAttempted(identity=identity, reason="unknown user agent")
            elif not ua.enabled:
                outcomes[identity] = NotAttempted(identity=identity, reason="user agent disabled")
            elif not self.capture_filter.matches(identity):
                outcomes[identity] = NotAttempted(identity=identity, reason="excluded by filter")
            else:
                pending.append((identity, ua))

        if not pending:
            logger.info("Nothing to capture (%d targets not attempted)", len(outcomes))
            return outcomes

        start = time.time()
        logger.info("Capturing %d screenshots (%d parallel)...",
                    len(pending), self.config.max_parallel_captures)

        async with async_playwright() as p:
            browsers, launch_errors = await self._launch_browsers(
                p, sorted({ua.browser for _, ua in pending})
            )
            semaphore = asyncio.Semaphore(self.config.max_parallel_captures)

            async def _run_one(identity: ScreenshotIdentity, ua: UserAgentConfig) -> CaptureOutcome:
                browser = browsers.get(ua.browser)
                if browser is None:
                    return Failed(
                        identity=identity,
                        reason=f"browser unavailable: {launch_errors.get(ua.browser, ua.browser)}",
                    )
                async with semaphore:
                    return await self._capture_one(browser, identity, ua)

            results = await asyncio.gather(*(_run_one(i, ua) for i, ua in pending))

            for browser in browsers.values():
                await browser.close()

        for outcome in results:
            outcomes[outcome.identity] = outcome
            if isinstance(outcome, Failed):
                logger.warning("Capture failed for %s: %s", outcome.identity, outcome.reason)

        captured = sum(1 for o in results if isinstance(o, Captured))
        logger.info("Captured %d/%d screenshots in %.1fs",
                    captured, len(pending), time.time() - start)
        return outcomes

    async def _launch_browsers(
        self, playwright: Playwright, engines: list[str],
    ) -> tuple[dict[str, Browser], dict[str, str]]:
        """Launch one headless browser per engine; engines that fail are reported, not raised."""
        browsers: dict[str, Browser] = {}
        errors: dict[str, str] = {}
        for engine in engines:
            try:
                logger.debug("Launching %s...", engine)
                browsers[engine] = await getattr(playwright, engine).launch(headless=True)
            except Exception as e:
                logger.error("Could not launch %s: %s", engine, e)
                errors[engine] = str(e).splitlines()[0] if str(e) else type(e).__name__
        return browsers, errors

    async def _capture_one(
        self, browser: Browser, identity: ScreenshotIdentity, ua: UserAgentConfig,
    ) -> CaptureOutcome:
        """Capture a single screenshot. Every failure becomes a Failed outcome."""
        try:
            png = await asyncio.wait_for(
                self._take_screenshot(browser, identity, ua),
                timeout=self.config.capture_timeout_seconds,
            )
        except asyncio.TimeoutError:
            return Failed(identity=identity, reason="timeout")
        except CaptureFailure as e:
            return Failed(identity=identity, reason=e.message)
        except Exception as e:
            return Failed(identity=identity, reason=f"{type(e).__name__}: {e}")

        outcome = Captured.from_bytes(identity, png)
        if self.asset_store:
            outcome = outcome.model_copy(update={"image_url": self.asset_store.url_for(outcome.image_hash)})
        logger.debug("Captured %s (%s)", identity, outcome.image_hash[:12])
        return outcome

    async def _take_screenshot(
        self, browser: Browser, identity: ScreenshotIdentity, ua: UserAgentConfig,
    ) -> bytes:
        url = page_url(self.config.base_url, identity.page)
        context_options: dict = {
            "viewport": {"width": ua.width, "height": ua.height},
            "device_scale_factor": ua.device_scale_factor,
        }
        if ua.user_agent:
            context_options["user_agent"] = ua.user_agent

        context = await browser.new_context(**context_options)
        try:
            page = await context.new_page()
            response = await page.goto(url, wait_until="load")
            if response is not None and response.status >= 400:
                raise CaptureFailure(f"HTTP {response.status} for {url}")

            # Let fonts, images and animations settle before the shot
            try:
                await page.wait_for_load_state("networkidle", timeout=3000)
            except PlaywrightTimeoutError:
                pass
            if self.config.settle_ms:
                await page.wait_for_timeout(self.config.settle_ms)

            return await page.screenshot(full_page=self.config.full_page, type="png")
        finally:
            await context.close()
