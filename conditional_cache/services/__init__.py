"""Cache stores, tagged namespaces and the conditional response engine."""
