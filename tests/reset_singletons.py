"""
Centralized singleton reset utilities for testing.

These functions reset global singleton instances to prevent test pollution.
A GraphStore singleton that outlives a test keeps pointing at that test's
temporary database.

Usage in conftest.py:
    @pytest.fixture(autouse=True)
    def reset_singletons_after_test():
        yield
        reset_all_singletons()
"""


def reset_all_singletons() -> None:
    """
    Reset every module-level singleton.

    Resets:
    - GraphStore
    - EntityMerger
    """
    from relgraph.services.graph_store import reset_graph_store
    from relgraph.services.entity_merger import reset_entity_merger

    reset_graph_store()
    reset_entity_merger()
