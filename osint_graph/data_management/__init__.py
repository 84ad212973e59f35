"""Data management package: graph schemas, merge engine and statistics.

- result_merger: folds one extraction pass into the cumulative graph
- graph_stats: rankings and counts for display
"""

from osint_graph.data_management.result_merger import MergeStats, merge_results
from osint_graph.data_management.graph_stats import GraphStats, compute_graph_stats

__all__ = [
    "MergeStats",
    "merge_results",
    "GraphStats",
    "compute_graph_stats",
]
