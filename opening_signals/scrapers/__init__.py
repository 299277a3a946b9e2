from .canada_search import CanadaSearchScraper
from .listings import ListingsScraper

__all__ = [
    "CanadaSearchScraper",
    "ListingsScraper",
]
