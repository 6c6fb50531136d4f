# -*- coding: utf-8 -*-
"""
Order execution for live and paper sessions.

Applies session settings to an order, runs the same ordered risk checks the
backtester uses against broker state, and submits through a
``TradingProvider`` with a bounded wait.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import replace
from datetime import datetime
from typing import Optional

from stratengine.backtesting.config import OrderType, SessionSettings, TimeInForce
from stratengine.backtesting.risk_controls import AccountSnapshot, RiskCheckResult, RiskController
from stratengine.backtesting.risk_manager import RiskManager
from stratengine.errors import ExecutionError, ValidationError
from stratengine.live.provider import OrderRequest, OrderResponse, TradingProvider


logger = logging.getLogger(__name__)

DEFAULT_ORDER_TIMEOUT = 10.0  # Seconds


def prepare_order(base_order: OrderRequest, settings: SessionSettings,
                  portfolio_value: float) -> OrderRequest:
    """
    Fill an order's unset fields from session settings.

    Parameters
    ----------
    base_order : OrderRequest
        Caller's order. Fields it sets win over settings defaults.
    settings : SessionSettings
        Session execution settings.
    portfolio_value : float
        Current equity, used for notional sizing.

    Returns
    -------
    OrderRequest
        A new order; ``base_order`` is not modified.
    """
    if not base_order.symbol:
        raise ValidationError("Order symbol is required")
    if base_order.side not in ('buy', 'sell'):
        raise ValidationError(f"Order side must be 'buy' or 'sell', got {base_order.side!r}")

    time_in_force = settings.time_in_force if settings.allow_partial_fills else TimeInForce.FOK.value
    order = replace(
        base_order,
        type=base_order.type or settings.order_type_default,
        time_in_force=base_order.time_in_force or time_in_force,
        extended_hours=(settings.extended_hours if base_order.extended_hours is None
                        else base_order.extended_hours),
    )

    if order.qty is None and order.notional is None:
        order.notional = RiskManager(settings).target_notional(portfolio_value)

    if settings.enable_bracket_orders:
        order.order_class = 'bracket'

    if settings.enable_trailing_stop and settings.trailing_stop_percentage is not None:
        trailing = OrderType.TRAILING_STOP.value
        if order.type == trailing or settings.order_type_default == trailing:
            order.type = trailing
            order.trail_percent = settings.trailing_stop_percentage

    if settings.enable_oco_orders:
        order.order_class = 'oco'

    return order


def check_risk(provider: TradingProvider, settings: SessionSettings, symbol: str,
               notional: float, now: Optional[datetime] = None, side: str = 'buy',
               intraday: bool = True) -> RiskCheckResult:
    """
    Run the session risk checks for an order against broker state.

    Parameters
    ----------
    provider : TradingProvider
        Source of account and position state.
    settings : SessionSettings
        Limits to enforce.
    symbol : str
        Order symbol.
    notional : float
        Dollar size of the order.
    now : datetime, optional
        Evaluation time for the trading window. Defaults to the current time.
    side : str, default 'buy'
        Sells are only checked against the trading window.
    intraday : bool, default True
        Whether to enforce trading hours in addition to trading days.

    Returns
    -------
    RiskCheckResult
    """
    now = now or datetime.now()
    controller = RiskController(settings, intraday=intraday)
    if side == 'sell':
        return controller.check_trading_window(now)

    account = provider.get_account()
    positions = provider.get_positions()
    held = next((p for p in positions if p.symbol == symbol), None)
    snapshot = AccountSnapshot(
        portfolio_value=account.portfolio_value,
        open_positions=sum(1 for p in positions if p.quantity),
        position_value=abs(held.market_value) if held is not None else 0.0,
        day_start_equity=account.last_equity,
    )
    return controller.check_order(side, notional, now, snapshot)


def _order_notional(provider: TradingProvider, order: OrderRequest, settings: SessionSettings,
                    portfolio_value: float) -> float:
    """Dollar size of ``order`` as the risk check sees it."""
    if order.notional is not None:
        return float(order.notional)
    if order.qty is None:
        return RiskManager(settings).target_notional(portfolio_value)
    price = order.limit_price if order.limit_price is not None else provider.get_price(order.symbol)
    if price is None:
        raise ExecutionError(f"No price available for {order.symbol} to size a {order.qty} share order")
    return float(order.qty) * float(price)


def submit_order(provider: TradingProvider, settings: SessionSettings, base_order: OrderRequest,
                 timeout: float = DEFAULT_ORDER_TIMEOUT,
                 now: Optional[datetime] = None, intraday: bool = True) -> OrderResponse:
    """
    Risk-check, prepare and submit an order.

    The provider call runs on a worker thread and is abandoned after
    ``timeout`` seconds. Failures are returned as a rejected response and
    are not retried.

    Returns
    -------
    OrderResponse
        The broker's response, or ``status="rejected"`` with ``error`` set.
    """
    symbol = base_order.symbol
    try:
        account = provider.get_account()
        if base_order.side == 'sell':
            notional = 0.0
        else:
            notional = _order_notional(provider, base_order, settings, account.portfolio_value)
        check = check_risk(provider, settings, symbol, notional, now=now,
                           side=base_order.side, intraday=intraday)
        if not check.allowed:
            logger.warning(f"Order for {symbol} rejected by risk check: {check.reason}")
            return OrderResponse(status="rejected", symbol=symbol, error=check.reason)

        order = prepare_order(base_order, settings, account.portfolio_value)
    except Exception as e:
        logger.error(f"Error preparing order for {symbol}: {e}")
        return OrderResponse(status="rejected", symbol=symbol, error=str(e))

    pool = ThreadPoolExecutor(max_workers=1)
    future = pool.submit(provider.submit_order, order)
    try:
        response = future.result(timeout=timeout)
    except FutureTimeoutError:
        logger.error(f"Order submission for {symbol} timed out after {timeout}s")
        return OrderResponse(status="rejected", symbol=symbol,
                             error=f"Order submission timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Error submitting order for {symbol}: {e}")
        return OrderResponse(status="rejected", symbol=symbol, error=str(e))
    finally:
        # Don't block on a hung provider call
        pool.shutdown(wait=False)

    logger.info(f"Submitted {order.side} order for {symbol}: {response.status} ({response.order_id})")
    return response
