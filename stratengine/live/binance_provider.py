# -*- coding: utf-8 -*-
"""
Binance spot adapter for ``TradingProvider``.

Wraps the python-binance ``Client``. Spot accounts have no positions in the
futures sense, so every non-quote asset with a balance is reported as a
position valued at the current ticker price. Supports Testnet and Realnet.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceOrderException

from stratengine.errors import ProviderError
from stratengine.live.provider import (
    AccountInfo,
    BrokerPosition,
    OrderRequest,
    OrderResponse,
    TradingProvider,
)


logger = logging.getLogger(__name__)

# Binance time-in-force values accepted for limit orders
_TIME_IN_FORCE = {'gtc': 'GTC', 'ioc': 'IOC', 'fok': 'FOK', 'day': 'GTC'}


class BinanceTradingProvider(TradingProvider):
    """Spot trading through the python-binance client."""

    def __init__(self, api_key: str, api_secret: str, use_testnet: bool = True,
                 quote_asset: str = "USDT", client: Optional[Client] = None):
        """
        Initialize Binance provider.

        Parameters
        ----------
        api_key : str
            Binance API key
        api_secret : str
            Binance API secret
        use_testnet : bool, default True
            Whether to use Binance Testnet
        quote_asset : str, default "USDT"
            Asset that cash and position values are measured in
        client : binance.client.Client, optional
            Pre-built client (tests inject a stub here)
        """
        self.use_testnet = use_testnet
        self.quote_asset = quote_asset
        self._day_start: Optional[Tuple[date, float]] = None
        if client is not None:
            self.client = client
            return

        api_key = api_key.strip() if api_key else ""
        api_secret = api_secret.strip() if api_secret else ""
        if not api_key or not api_secret:
            raise ValueError("API key and secret must be provided")
        self.client = Client(api_key=api_key, api_secret=api_secret, testnet=use_testnet)
        endpoint = "TESTNET" if use_testnet else "REALNET"
        logger.info(f"Connected to Binance {endpoint}")

    def _price(self, symbol: str) -> float:
        ticker = self.client.get_symbol_ticker(symbol=symbol)
        return float(ticker['price'])

    def _balances(self) -> Dict[str, float]:
        account = self.client.get_account()
        balances = {}
        for balance in account.get('balances', []):
            total = float(balance['free']) + float(balance.get('locked', 0.0))
            if total > 0:
                balances[balance['asset']] = total
        return balances

    def get_positions(self) -> List[BrokerPosition]:
        try:
            positions = []
            for asset, quantity in self._balances().items():
                if asset == self.quote_asset:
                    continue
                symbol = f"{asset}{self.quote_asset}"
                price = self._price(symbol)
                positions.append(BrokerPosition(symbol, quantity, quantity * price, current_price=price))
            return positions
        except BinanceAPIException as e:
            logger.error(f"Error getting positions: {e}")
            raise ProviderError(f"Binance positions request failed: {e}") from e

    def get_price(self, symbol: str) -> Optional[float]:
        try:
            return self._price(symbol)
        except BinanceAPIException as e:
            logger.error(f"Error getting price for {symbol}: {e}")
            raise ProviderError(f"Binance ticker request failed: {e}") from e

    def get_account(self) -> AccountInfo:
        """
        Account summary in the quote asset.

        Binance reports no previous-close equity, so ``last_equity`` is the
        first equity this adapter observed on the current UTC day.
        """
        try:
            cash = self._balances().get(self.quote_asset, 0.0)
        except BinanceAPIException as e:
            logger.error(f"Error getting account info: {e}")
            raise ProviderError(f"Binance account request failed: {e}") from e
        equity = cash + sum(p.market_value for p in self.get_positions())

        today = datetime.now(timezone.utc).date()
        if self._day_start is None or self._day_start[0] != today:
            self._day_start = (today, equity)
            logger.info(f"Start-of-day equity for {today}: {equity:.2f} {self.quote_asset}")
        return AccountInfo(portfolio_value=equity, cash=cash, buying_power=cash, equity=equity,
                           last_equity=self._day_start[1])


    def _place(self, order: OrderRequest) -> Dict[str, Any]:
        side = order.side.upper()
        kwargs: Dict[str, Any] = {'symbol': order.symbol, 'side': side}
        if order.type == 'limit':
            if order.qty is None or order.limit_price is None:
                raise ProviderError("Limit orders need qty and limit_price")
            kwargs.update(type=Client.ORDER_TYPE_LIMIT, quantity=order.qty, price=str(order.limit_price),
                          timeInForce=_TIME_IN_FORCE.get(order.time_in_force or 'gtc', 'GTC'))
        elif order.type == 'market':
            kwargs['type'] = Client.ORDER_TYPE_MARKET
            if order.qty is not None:
                kwargs['quantity'] = order.qty
            else:
                kwargs['quoteOrderQty'] = order.notional
        else:
            raise ProviderError(f"Order type '{order.type}' is not supported on Binance spot")
        return self.client.create_order(**kwargs)

    def submit_order(self, order: OrderRequest) -> OrderResponse:
        try:
            raw = self._place(order)
        except (BinanceAPIException, BinanceOrderException) as e:
            logger.error(f"Error placing {order.type} {order.side} order for {order.symbol}: {e}")
            return OrderResponse(status="rejected", symbol=order.symbol, error=str(e))

        filled = float(raw.get('executedQty', 0.0))
        quote = float(raw.get('cummulativeQuoteQty', 0.0))
        logger.info(f"Placed {order.type} {order.side} order: {raw.get('orderId')} for {order.symbol}")
        return OrderResponse(
            status=str(raw.get('status', 'NEW')).lower(),
            order_id=str(raw.get('orderId')),
            symbol=order.symbol,
            filled_qty=filled,
            filled_avg_price=quote / filled if filled else None,
        )
