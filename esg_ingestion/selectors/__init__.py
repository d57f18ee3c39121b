"""Read-only selectors for ESG metric records."""

from esg_ingestion.selectors.metric_selector import MetricSelector

__all__ = ["MetricSelector"]
