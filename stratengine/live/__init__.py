# -*- coding: utf-8 -*-
"""
Live trading module.

Order preparation and submission with session settings and risk checks
applied, a Binance adapter, and a forward-running paper trading session.
"""

from stratengine.live.provider import (
    AccountInfo,
    BrokerPosition,
    OrderRequest,
    OrderResponse,
    TradingProvider,
)
from stratengine.live.order_execution import check_risk, prepare_order, submit_order
from stratengine.live.binance_provider import BinanceTradingProvider
from stratengine.live.session import PaperTradingSession, SessionEvent, SessionEventType

__all__ = [
    'AccountInfo',
    'BrokerPosition',
    'OrderRequest',
    'OrderResponse',
    'TradingProvider',
    'check_risk',
    'prepare_order',
    'submit_order',
    'BinanceTradingProvider',
    'PaperTradingSession',
    'SessionEvent',
    'SessionEventType'
]
