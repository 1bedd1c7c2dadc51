from .quote import (
    GRADES,
    ITEM_FIELDS,
    QUOTE_STATUSES,
    SNAPSHOT_FIELDS,
    Quote,
    QuoteItem,
    QuoteVersion,
    QuoteVersionItem,
)
from .catalog import LaborCost, MaterialPrice, CompositeCost

__all_models = [Quote, QuoteItem, QuoteVersion, QuoteVersionItem, LaborCost, MaterialPrice, CompositeCost]
