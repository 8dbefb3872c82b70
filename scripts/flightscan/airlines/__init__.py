"""
Airline Adapter Modules

Each module provides an adapter class that drives one airline's
website and a pure parsing function for its results page.
"""

from .china_airlines import ChinaAirlinesAdapter
from .eva_air import EvaAirAdapter
from .starlux import StarluxAdapter
from .cathay_pacific import CathayPacificAdapter
from .singapore_airlines import SingaporeAirlinesAdapter
from .emirates import EmiratesAdapter

__all__ = [
    "ChinaAirlinesAdapter",
    "EvaAirAdapter",
    "StarluxAdapter",
    "CathayPacificAdapter",
    "SingaporeAirlinesAdapter",
    "EmiratesAdapter",
]
