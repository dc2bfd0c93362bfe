"""Utility functions for the Reel Assembler."""

from reel_assembler.utils.io_utils import create_run_output_dir, slugify
from reel_assembler.utils.temp_assets import TempAssetTracker
from reel_assembler.utils.text_utils import clean_search_terms, query_similarity

__all__ = [
    "create_run_output_dir",
    "slugify",
    "TempAssetTracker",
    "clean_search_terms",
    "query_similarity",
]
