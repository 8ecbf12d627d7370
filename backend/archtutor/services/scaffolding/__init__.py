"""
Scaffolding

Adaptive support for the tutor:
- feedback counters that drive support and reduction levels
- progressive reduction of retrieved content
- response templates and the top-level orchestrator
"""

from archtutor.services.scaffolding.feedback import FeedbackController
from archtutor.services.scaffolding.reduction import reduce_content

__all__ = [
    "FeedbackController",
    "reduce_content",
]
