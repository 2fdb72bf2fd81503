"""Record extraction: strategies, shared row validator and declarative rules."""
from cardpop.extraction.extractor import DataExtractor, ExtractionResult
from cardpop.extraction.strategies import (
    CapturedPayload,
    EmbeddedScriptJson,
    HtmlTable,
    LooseText,
    Strategy,
)
from cardpop.extraction.validator import RowValidator

__all__ = [
    "DataExtractor",
    "ExtractionResult",
    "Strategy",
    "EmbeddedScriptJson",
    "CapturedPayload",
    "HtmlTable",
    "LooseText",
    "RowValidator",
]
