"""
Query Pipeline Module.
"""

from guarded_qa.pipeline.service import GuardedQueryService, QueryAnswer

__all__ = ["GuardedQueryService", "QueryAnswer"]
