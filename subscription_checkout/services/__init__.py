"""Service layer: each module owns one unit of checkout behaviour."""
