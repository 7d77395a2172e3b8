"""Safety override layer: crisis fast path, distress check, grounding mode"""

from innerparts.safety.crisis import detect_crisis_keywords, match_crisis_pattern
from innerparts.safety.distress import DistressMonitor
from innerparts.safety.grounding import GroundingController

__all__ = [
    "detect_crisis_keywords",
    "match_crisis_pattern",
    "DistressMonitor",
    "GroundingController",
]
