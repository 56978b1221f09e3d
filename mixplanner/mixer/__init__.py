"""
Mixing: filter-graph pump, manual PCM mixer and the mix service.
"""

from mixplanner.mixer.pump import MixPump, PumpStats, StreamState
from mixplanner.mixer.pcm_mixer import ManualPCMPump, mix_block
from mixplanner.mixer.service import MixPlanner, MixResult, mix

__all__ = [
    "MixPump",
    "PumpStats",
    "StreamState",
    "ManualPCMPump",
    "mix_block",
    "MixPlanner",
    "MixResult",
    "mix",
]
