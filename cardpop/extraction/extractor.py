#!/usr/bin/env python3
"""
Data Extractor - ordered strategy chain

Runs each Strategy in priority order against one page and returns the
first non-empty, validated record list. Raises ParseError when every
strategy comes back empty.
"""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from cardpop.errors import ParseError
from cardpop.models import CapturedResponse, CardRecord
from cardpop.extraction.strategies import ExtractionInput, Strategy, default_strategies
from cardpop.utils.logger import get_logger

logger = get_logger("extractor")


@dataclass
class ExtractionResult:
    records: List[CardRecord]
    strategy: str
    url: Optional[str] = None

    def __len__(self):
        return len(self.records)


class DataExtractor:
    """Applies strategies in order; first schema-valid result wins."""

    def __init__(self, strategies: Optional[Sequence[Strategy]] = None):
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    @property
    def strategy_names(self) -> List[str]:
        return [s.name for s in self.strategies]

    def extract(
        self,
        markup: str,
        captured: Sequence[CapturedResponse] = (),
        url: Optional[str] = None,
    ) -> ExtractionResult:
        page = ExtractionInput(markup=markup or "", captured=list(captured), url=url)

        for strategy in self.strategies:
            records = strategy.try_extract(page)
            if not records:
                logger.debug(f"Strategy {strategy.name} found nothing", extra={"url": url})
                continue

            unique = []
            seen = set()
            for record in records:
                if record.key not in seen:
                    seen.add(record.key)
                    unique.append(record)
            logger.info(f"Extracted {len(unique)} records via {strategy.name}", extra={"url": url})
            return ExtractionResult(records=unique, strategy=strategy.name, url=url)

        raise ParseError("No data found", url=url, strategy=",".join(self.strategy_names))
