"""
Airline Adapter Registry

Maps airline codes to adapter classes. The roster is fixed in code;
callers pick a subset, they cannot add airlines at runtime.
"""

from __future__ import annotations

from typing import Iterable, Optional

from .base import AirlineAdapter
from .schema import SUPPORTED_AIRLINES


def get_adapter(code: str) -> AirlineAdapter:
    """
    Create the adapter for an airline code.

    Raises ValueError if the airline is not on the roster.
    """
    code = code.strip().upper()
    # Lazy imports keep playwright-heavy modules out of pure-parsing callers
    if code == "CI":
        from .airlines.china_airlines import ChinaAirlinesAdapter
        return ChinaAirlinesAdapter()
    elif code == "BR":
        from .airlines.eva_air import EvaAirAdapter
        return EvaAirAdapter()
    elif code == "JX":
        from .airlines.starlux import StarluxAdapter
        return StarluxAdapter()
    elif code == "CX":
        from .airlines.cathay_pacific import CathayPacificAdapter
        return CathayPacificAdapter()
    elif code == "SQ":
        from .airlines.singapore_airlines import SingaporeAirlinesAdapter
        return SingaporeAirlinesAdapter()
    elif code == "EK":
        from .airlines.emirates import EmiratesAdapter
        return EmiratesAdapter()
    else:
        raise ValueError(
            f"No adapter registered for airline '{code}'. "
            f"Available: {', '.join(SUPPORTED_AIRLINES)}"
        )


def build_adapters(codes: Optional[Iterable[str]] = None) -> dict[str, AirlineAdapter]:
    """Adapters keyed by code, for the given codes or the whole roster."""
    return {code: get_adapter(code) for code in (codes or SUPPORTED_AIRLINES)}


def get_available_airlines() -> list[str]:
    """Return list of all supported airline codes."""
    return list(SUPPORTED_AIRLINES)


def get_miles_airlines() -> list[str]:
    """Airlines whose adapter can search award seats."""
    return [code for code in SUPPORTED_AIRLINES if get_adapter(code).supports_miles]
