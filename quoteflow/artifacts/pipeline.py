"""
Per-step artifact capture: screenshots, DOM dumps and ARIA snapshots.
"""
import logging
import re
import unicodedata
from pathlib import Path
from typing import Optional

from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)


def slugify(text: str, max_length: int = 60) -> str:
    normalized = unicodedata.normalize("NFKD", text or "").encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "step"


def step_number(index: int) -> str:
    """Zero-based index to the two-digit, one-based number used in file names."""
    return f"{index + 1:02d}"


class ScreenshotManager:
    async def capture(self, page, path: Path) -> Path:
        """Full-page PNG; on failure waits for the DOM to settle and retries once."""
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            await page.screenshot(path=str(path), full_page=True)
        except PlaywrightError as e:
            logger.info("[screenshot] %s failed (%s), retrying once", path.name, e)
            await page.wait_for_load_state("domcontentloaded")
            await page.screenshot(path=str(path), full_page=True)
        return path


class DomCollector:
    """Writes step-NN.html (and step-NN.a11y.yml) depending on the dom mode."""

    @staticmethod
    def should_collect(mode: str, on_error: bool) -> bool:
        if mode == "all":
            return True
        if mode == "steps":
            return not on_error
        if mode == "errors":
            return on_error
        return False

    async def maybe_collect(self, scope, index: int, dom_dir: Path, mode: str,
                            a11y: bool = False, on_error: bool = False) -> Optional[Path]:
        if not self.should_collect(mode, on_error):
            return None
        dom_dir.mkdir(parents=True, exist_ok=True)
        html_path = dom_dir / f"step-{step_number(index)}.html"
        try:
            html = await scope.content()
            if len(html.strip()) < 100:
                logger.warning("[dom] empty or very short DOM for step %d (%d chars)", index + 1, len(html))
            html_path.write_text(html, encoding="utf-8")
        except (PlaywrightError, OSError) as e:
            logger.error("[dom] capture failed for step %d: %s", index + 1, e)
            return None

        if a11y:
            try:
                snapshot = await scope.locator("body").aria_snapshot()
                (dom_dir / f"step-{step_number(index)}.a11y.yml").write_text(snapshot, encoding="utf-8")
            except (PlaywrightError, OSError) as e:
                logger.warning("[dom] aria snapshot failed for step %d: %s", index + 1, e)
        return html_path


class ArtifactsPipeline:
    def __init__(self, run_dir: Path, screenshots: Optional[ScreenshotManager] = None,
                 dom: Optional[DomCollector] = None):
        self.run_dir = Path(run_dir)
        self.screenshots_dir = self.run_dir / "screenshots"
        self.dom_dir = self.run_dir / "dom"
        self.screens = screenshots or ScreenshotManager()
        self.dom = dom or DomCollector()

    def shot_name(self, index: int, label: str) -> str:
        return f"step-{step_number(index)}-{slugify(label)}.png"

    def error_name(self, index: int) -> str:
        return f"error-{step_number(index)}.png"

    def relative(self, path: Path) -> str:
        return path.relative_to(self.run_dir).as_posix()

    async def on_step_ok(self, page, scope, index: int, label: str,
                         dom_mode: str = "errors", a11y: bool = False) -> str:
        """Capture the success screenshot; a capture failure propagates."""
        path = await self.screens.capture(page, self.screenshots_dir / self.shot_name(index, label))
        await self.dom.maybe_collect(scope, index, self.dom_dir, dom_mode, a11y, on_error=False)
        return self.relative(path)

    async def on_step_error(self, page, scope, index: int,
                            dom_mode: str = "errors", a11y: bool = False) -> Optional[str]:
        path = self.screenshots_dir / self.error_name(index)
        shot = None
        try:
            await self.screens.capture(page, path)
            shot = self.relative(path)
        except PlaywrightError as e:
            logger.warning("[screenshot] error screenshot failed for step %d: %s", index + 1, e)
        await self.dom.maybe_collect(scope, index, self.dom_dir, dom_mode, a11y, on_error=True)
        return shot
