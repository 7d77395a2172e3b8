"""Ancillary suggestion engines"""

from innerparts.engines.disagreement_engine import DisagreementEngine
from innerparts.engines.echo_engine import EchoEngine
from innerparts.engines.quiet_tracker import QuietTracker
from innerparts.engines.quote_engine import QuoteEngine
from innerparts.engines.ritual_engine import RitualEngine
from innerparts.engines.thread_engine import ThreadEngine

__all__ = [
    "DisagreementEngine",
    "EchoEngine",
    "QuietTracker",
    "QuoteEngine",
    "RitualEngine",
    "ThreadEngine",
]
