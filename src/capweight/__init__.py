"""capweight: market-cap snapshot history and weighted allocation ranking."""

__all__ = ["CapWeightSettings", "MarketCapService", "__version__"]
__version__ = "0.1.0"


def __getattr__(name: str):
    if name == "CapWeightSettings":
        from .config import CapWeightSettings

        return CapWeightSettings
    if name == "MarketCapService":
        from .marketcap.service import MarketCapService

        return MarketCapService
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
