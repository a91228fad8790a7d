"""
Core Market Simulation Package

Price simulation, volatility/sentiment estimation, option premium model and
options chain construction.
"""

from optionsim.core.market_summary import MarketSummary, summarize
from optionsim.core.models import (
    Moneyness,
    Option,
    OptionKind,
    OptionSnapshot,
    OptionsChain,
    PriceHistory,
    PricePoint,
    classify_moneyness,
)
from optionsim.core.options_chain import OptionsChainBuilder, option_id
from optionsim.core.premium_model import PremiumModel, Quote, intrinsic_value
from optionsim.core.price_simulator import PriceSimulator
from optionsim.core.volatility import VolatilityEstimator

__all__ = [
    # Models
    "Moneyness",
    "Option",
    "OptionKind",
    "OptionSnapshot",
    "OptionsChain",
    "PriceHistory",
    "PricePoint",
    "classify_moneyness",
    # Components
    "PriceSimulator",
    "VolatilityEstimator",
    "PremiumModel",
    "Quote",
    "intrinsic_value",
    "OptionsChainBuilder",
    "option_id",
    "MarketSummary",
    "summarize",
]
