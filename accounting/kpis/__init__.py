"""KPI aggregation package."""

from accounting.kpis.engine import KPIEngine

__all__ = ["KPIEngine"]
