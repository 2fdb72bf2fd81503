#!/usr/bin/env python3
"""
CardPop Service - public entry points

    service = CardPopService()
    result = service.search("2024 topps update us50 holliday -(auto)")
    result.to_dict()   # {"success": True, "data": {...}, "source": "gemrate", ...}

    result = service.get_checklist("2024-topps-update-baseball-checklist", all_pages=True)

Neither entry point raises: every failure comes back as a LookupResult
carrying a typed Failure.
"""
import argparse
import json
import sys
from typing import Any, Dict, Optional, Union

from cardpop.checklist.catalog import ChecklistCatalog
from cardpop.checklist.paginator import ChecklistPaginator
from cardpop.errors import CardPopError
from cardpop.extraction.extractor import DataExtractor
from cardpop.market.population import PopulationParser
from cardpop.market.search_resolver import SearchResolver, sanitize_query
from cardpop.models import LookupResult, SetReference
from cardpop.scanners.page_fetcher import PageFetcher
from cardpop.session import SessionContext
from cardpop.utils.cache import ResultCache
from cardpop.utils.logger import get_logger, log_performance

logger = get_logger("service")

SEARCH_SOURCE = "gemrate"
CHECKLIST_SOURCE = "checklistinsider"


class CardPopService:
    """Owns one SessionContext and the extraction components built on it."""

    def __init__(
        self,
        ctx: Optional[SessionContext] = None,
        fetcher: Optional[PageFetcher] = None,
        extractor: Optional[DataExtractor] = None,
        resolver: Optional[SearchResolver] = None,
        paginator: Optional[ChecklistPaginator] = None,
        catalog: Optional[ChecklistCatalog] = None,
        cache: Optional[ResultCache] = None,
    ):
        self.ctx = ctx if ctx is not None else SessionContext()
        if not self.ctx.is_open:
            self.ctx.open()

        self.fetcher = fetcher or PageFetcher()
        self.extractor = extractor or DataExtractor()
        self.resolver = resolver or SearchResolver(self.fetcher, parser=PopulationParser())
        self.paginator = paginator or ChecklistPaginator(self.fetcher, self.extractor)
        self.catalog = catalog or ChecklistCatalog(http=self.ctx.http)
        self.cache = cache if cache is not None else ResultCache()

    def close(self):
        self.ctx.close()

    def __enter__(self) -> "CardPopService":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------

    @log_performance
    def search(self, query: str, options: Optional[Dict[str, Any]] = None) -> LookupResult:
        """Resolve a free-text card query to one normalized population record."""
        key = ResultCache.key("search", sanitize_query(query), json.dumps(options or {}, sort_keys=True))
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Search cache hit: {query}")
            return cached

        result = self._run(SEARCH_SOURCE, self.resolver.search, self.ctx, query, options)
        if result.success:
            self.cache.set(key, result)
        return result

    @log_performance
    def get_checklist(self, set_ref: Union[SetReference, str], all_pages: bool = False) -> LookupResult:
        """Card list for one set; all_pages follows the site's pagination."""
        if isinstance(set_ref, str):
            set_ref = _set_reference(set_ref)

        key = ResultCache.key("checklist", set_ref.url or set_ref.slug or set_ref.set_id, all_pages)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug(f"Checklist cache hit: {key}")
            return cached

        result = self._run(CHECKLIST_SOURCE, self.paginator.get_full_checklist, self.ctx, set_ref, all_pages)
        if result.success:
            self.cache.set(key, result)
        return result

    def _run(self, source: str, func, *args) -> LookupResult:
        try:
            return LookupResult.ok(func(*args), source=source)
        except CardPopError as e:
            logger.warning(f"{source} lookup failed: {e}")
            return LookupResult.fail(e, source=source)
        except Exception as e:
            logger.error(f"Unexpected error in {source} lookup: {e}", exc_info=True)
            return LookupResult.fail(e, source=source)


def _set_reference(value: str) -> SetReference:
    value = value.strip()
    if value.startswith("http"):
        return SetReference(url=value)
    if value.isdigit():
        return SetReference(set_id=value)
    return SetReference(slug=value.strip("/"))


# =============================================================================
# CLI
# =============================================================================

def main(argv=None) -> int:
    from dotenv import load_dotenv

    from cardpop.utils.config_validator import validate_config

    load_dotenv()

    parser = argparse.ArgumentParser(prog="cardpop", description="Card population and checklist lookups")
    commands = parser.add_subparsers(dest="command", required=True)

    search = commands.add_parser("search", help="Population lookup for a card query")
    search.add_argument("query", nargs="+", help="Card query, e.g. 2024 topps update us50 holliday")

    checklist = commands.add_parser("checklist", help="Checklist for a set URL, slug or post id")
    checklist.add_argument("set", help="Set URL, slug or post id")
    checklist.add_argument("--all-pages", action="store_true", help="Follow next-page controls")

    commands.add_parser("sports", help="List sports in the checklist catalog")

    years = commands.add_parser("years", help="List years for a sport")
    years.add_argument("sport_id", type=int)
    years.add_argument("sport_name")

    sets = commands.add_parser("sets", help="List sets for a sport and year")
    sets.add_argument("sport_id", type=int)
    sets.add_argument("year", type=int)

    args = parser.parse_args(argv)

    is_valid, _ = validate_config()
    if not is_valid:
        print("Configuration is invalid, see log for details", file=sys.stderr)
        return 2

    with CardPopService() as service:
        if args.command == "search":
            output = service.search(" ".join(args.query)).to_dict()
        elif args.command == "checklist":
            output = service.get_checklist(args.set, all_pages=args.all_pages).to_dict()
        else:
            output = _catalog_command(service.catalog, args)

    print(json.dumps(output, indent=2))
    return 0 if output.get("success") else 1


def _catalog_command(catalog: ChecklistCatalog, args) -> Dict[str, Any]:
    try:
        if args.command == "sports":
            data = catalog.get_sports()
        elif args.command == "years":
            data = catalog.get_years(args.sport_id, args.sport_name)
        else:
            data = [s.to_dict() for s in catalog.get_sets(args.sport_id, args.year)]
    except CardPopError as e:
        return LookupResult.fail(e, source=CHECKLIST_SOURCE).to_dict()
    return LookupResult.ok(data, source=CHECKLIST_SOURCE).to_dict()


if __name__ == "__main__":
    sys.exit(main())
