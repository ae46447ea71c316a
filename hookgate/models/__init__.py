"""
SQLAlchemy models - import here so Base.metadata sees every table.
"""
from hookgate.models.decision_event import DecisionEventRecord

__all__ = ["DecisionEventRecord"]
