#!/usr/bin/env python3
"""
Checklist Paginator - complete listings from UI-paginated set pages

Opens the set's page in browser mode, clicks "show more" once if present,
then (when asked for all pages) keeps clicking "next page" and re-running
the extractor until the control disappears or MAX_CHECKLIST_PAGES is hit.

Records are de-duplicated on (number, player) across pages.

After every click the paginator waits (bounded) for the page itself to
change before extracting. A click that never changes the page, or a later
page with nothing to extract, ends the run with complete=False.

Browser handling:
- closed after a finished extraction and after any non-timeout failure
- left open on a timeout so the next call can reuse it
- if the browser is unavailable, the first page is read in lightweight
  mode and the result is flagged complete=False
"""
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from cardpop.errors import (
    BrowserUnavailableError, CardPopError, NavigationTimeout, NetworkError, NotFoundError, ParseError,
)
from cardpop.extraction.extractor import DataExtractor, ExtractionResult
from cardpop.models import CardRecord, FetchResult, SetReference
from cardpop.scanners.browser import NEXT_PAGE_LOCATORS, SHOW_MORE_LOCATORS, WaitCondition
from cardpop.scanners.page_fetcher import BROWSER, LIGHTWEIGHT, PageFetcher
from cardpop.session import SessionContext
from cardpop.utils.logger import get_logger

logger = get_logger("paginator")

# =============================================================================
# CONFIGURATION
# =============================================================================

CHECKLIST_BASE_URL = os.environ.get("CHECKLIST_BASE_URL", "https://www.checklistinsider.com").rstrip("/")
MAX_CHECKLIST_PAGES = int(os.environ.get("MAX_CHECKLIST_PAGES", "50"))
MIN_TABLE_ROWS = 5


@dataclass
class ChecklistResult:
    set_ref: SetReference
    records: List[CardRecord] = field(default_factory=list)
    pages: int = 0
    strategy: str = ""
    complete: bool = True
    truncated: bool = False
    mode: str = BROWSER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "set": self.set_ref.to_dict(),
            "cards": [r.to_dict() for r in self.records],
            "count": len(self.records),
            "pages": self.pages,
            "strategy": self.strategy,
            "complete": self.complete,
            "truncated": self.truncated,
            "mode": self.mode,
        }


def checklist_url(set_ref: SetReference, base_url: str = CHECKLIST_BASE_URL) -> str:
    if set_ref.url:
        return set_ref.url
    if set_ref.slug:
        if set_ref.slug.startswith("http"):
            return set_ref.slug
        return f"{base_url}/{set_ref.slug.strip('/')}/"
    if set_ref.set_id:
        return f"{base_url}/?p={set_ref.set_id}"
    raise ParseError("Set reference has no url, slug or id", strategy="checklist")


class ChecklistPaginator:
    """Drives show-more / next-page controls and accumulates unique records."""

    def __init__(
        self,
        fetcher: PageFetcher,
        extractor: Optional[DataExtractor] = None,
        max_pages: int = MAX_CHECKLIST_PAGES,
        base_url: str = CHECKLIST_BASE_URL,
    ):
        self.fetcher = fetcher
        self.extractor = extractor or DataExtractor()
        self.max_pages = max_pages
        self.base_url = base_url.rstrip("/")

    def get_full_checklist(self, ctx: SessionContext, set_ref: SetReference, all_pages: bool = True) -> ChecklistResult:
        url = checklist_url(set_ref, self.base_url)
        try:
            result = self._paginate(ctx, set_ref, url, all_pages)
        except BrowserUnavailableError as e:
            logger.warning(f"Browser unavailable, reading first page only: {e}")
            return self._lightweight(ctx, set_ref, url)
        except NavigationTimeout:
            raise
        except CardPopError:
            ctx.browser.close()
            raise

        ctx.browser.close()
        return result

    # ------------------------------------------------------------------
    # browser pagination
    # ------------------------------------------------------------------

    def _paginate(self, ctx: SessionContext, set_ref: SetReference, url: str, all_pages: bool) -> ChecklistResult:
        wait_for = WaitCondition.table_rows(MIN_TABLE_ROWS)
        page = self.fetcher.fetch(ctx, url, mode=BROWSER, wait_for=wait_for)
        if page.status in (404, 410):
            raise NotFoundError(f"Checklist page returned {page.status}", url=url, strategy=BROWSER)

        result = ChecklistResult(set_ref=set_ref)
        before = ctx.browser.page_signature()
        if ctx.browser.click_first(SHOW_MORE_LOCATORS):
            if ctx.browser.wait_for_change(before):
                logger.debug("Expanded 'show more' control")
                ctx.browser.wait_until(wait_for)
            else:
                result.complete = False
                logger.warning("'Show more' click did not change the page", extra={"url": url})
            page = ctx.browser.snapshot(requested_url=url)

        seen = set()
        extraction = self.extractor.extract(page.text, page.captured, url=page.url)
        self._accumulate(result, extraction, seen)

        while all_pages:
            if result.pages >= self.max_pages:
                if ctx.browser.has_control(NEXT_PAGE_LOCATORS):
                    result.truncated = True
                    logger.warning(f"Stopped at page ceiling ({self.max_pages})", extra={"url": url})
                break

            before = ctx.browser.page_signature()
            if not ctx.browser.click_first(NEXT_PAGE_LOCATORS):
                break
            if not ctx.browser.wait_for_change(before):
                result.complete = False
                logger.warning(f"Page {result.pages + 1} never loaded after clicking next", extra={"url": url})
                break

            ctx.browser.wait_until(wait_for)
            page = ctx.browser.snapshot(requested_url=url)
            try:
                extraction = self.extractor.extract(page.text, page.captured, url=page.url)
            except ParseError as e:
                result.complete = False
                logger.warning(f"Page {result.pages + 1} had no records: {e}", extra={"url": url})
                break
            added = self._accumulate(result, extraction, seen)
            logger.debug(f"Page {result.pages}: {added} new card(s)")

        logger.info(
            f"Checklist: {len(result.records)} cards over {result.pages} page(s)",
            extra={"url": url, "complete": result.complete, "truncated": result.truncated},
        )
        return result

    def _accumulate(self, result: ChecklistResult, extraction: ExtractionResult, seen: set) -> int:
        result.pages += 1
        result.strategy = result.strategy or extraction.strategy
        added = 0
        for record in extraction.records:
            if record.key in seen:
                continue
            seen.add(record.key)
            result.records.append(record)
            added += 1
        return added

    # ------------------------------------------------------------------
    # fallback
    # ------------------------------------------------------------------

    def _lightweight(self, ctx: SessionContext, set_ref: SetReference, url: str) -> ChecklistResult:
        page: FetchResult = self.fetcher.fetch(ctx, url, mode=LIGHTWEIGHT)
        if page.status in (404, 410):
            raise NotFoundError(f"Checklist page returned {page.status}", url=url, strategy=LIGHTWEIGHT)
        if not page.ok:
            raise NetworkError(f"Checklist page returned {page.status}", url=url, strategy=LIGHTWEIGHT)

        result = ChecklistResult(set_ref=set_ref, complete=False, mode=LIGHTWEIGHT)
        self._accumulate(result, self.extractor.extract(page.text, page.captured, url=page.url), set())
        return result
