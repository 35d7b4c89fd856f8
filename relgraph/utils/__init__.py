# relgraph Utilities
"""
Shared utility functions for relgraph services.
"""

from relgraph.utils.datetime_utils import make_aware, parse_timestamp, to_utc_iso, utc_now
from relgraph.utils.db_paths import get_graph_db_path

__all__ = ["make_aware", "parse_timestamp", "to_utc_iso", "utc_now", "get_graph_db_path"]
