"""
Push Hub
Server side of the push-update connection: client sessions, channel
subscriptions and fan-out of market, portfolio and account updates
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union
from pydantic import ValidationError
from tradedesk.core.exceptions import FrameParseError, ProviderError, UnknownMessageType
from tradedesk.core.logging import get_logger, log_connection_event
from tradedesk.realtime.messages import (
    QUOTE_CHANNEL_PREFIX,
    AuthFrame,
    AuthReplyFrame,
    BacktestUpdateFrame,
    Channel,
    ConnectionFrame,
    ErrorFrame,
    Frame,
    MarketDataFrame,
    MarketStatusFrame,
    ModuleUpdateFrame,
    PingFrame,
    PongFrame,
    PortfolioSnapshot,
    PortfolioUpdateFrame,
    Quote,
    StrategyUpdateFrame,
    SubscribeFrame,
    SubscriptionFrame,
    TradeUpdateFrame,
    UnsubscribeFrame,
    encode_frame,
    parse_client_frame,
    quote_channel,
    utcnow,
)
from tradedesk.utils.market_hours import get_market_status

logger = get_logger(__name__)

QuoteProvider = Callable[[str], Awaitable[Union[Quote, Dict[str, Any]]]]
PortfolioProvider = Callable[[int], Awaitable[Union[PortfolioSnapshot, Dict[str, Any]]]]


@dataclass
class ClientSession:
    """One connected dashboard"""
    session_id: str
    websocket: Any  # anything with an async send_text(str)
    connected_at: datetime = field(default_factory=utcnow)
    user_id: Optional[int] = None
    subscriptions: Set[str] = field(default_factory=set)


class PushHub:
    """Tracks dashboard sessions and pushes updates to subscribed channels"""

    def __init__(
        self,
        quote_provider: Optional[QuoteProvider] = None,
        portfolio_provider: Optional[PortfolioProvider] = None,
        market_data_interval: float = 5.0,
        portfolio_update_interval: float = 30.0,
        market_status: Callable[[], str] = get_market_status
    ):
        self.quote_provider = quote_provider
        self.portfolio_provider = portfolio_provider
        self.market_data_interval = market_data_interval
        self.portfolio_update_interval = portfolio_update_interval
        self._market_status = market_status

        self.clients: Dict[str, ClientSession] = {}
        self.is_running = False
        self._tasks: List[asyncio.Task] = []

        self.stats = {
            "total_connections": 0,
            "active_connections": 0,
            "messages_sent": 0,
            "messages_received": 0,
            "provider_errors": 0,
            "errors": 0
        }

    # Sessions

    async def register(self, websocket) -> ClientSession:
        """Track a new connection and confirm it"""
        session = ClientSession(session_id=uuid.uuid4().hex, websocket=websocket)
        self.clients[session.session_id] = session

        self.stats["total_connections"] += 1
        self.stats["active_connections"] = len(self.clients)
        log_connection_event(
            "client_connected",
            session_id=session.session_id,
            active_connections=len(self.clients)
        )

        await self.send(session, ConnectionFrame(status="connected", timestamp=utcnow()))
        return session

    def unregister(self, session: ClientSession) -> None:
        if self.clients.pop(session.session_id, None) is None:
            return
        self.stats["active_connections"] = len(self.clients)
        log_connection_event(
            "client_disconnected",
            session_id=session.session_id,
            user_id=session.user_id,
            active_connections=len(self.clients)
        )

    async def handle_frame(self, session: ClientSession, raw: Union[str, bytes]) -> None:
        """Apply one control frame sent by a dashboard"""
        self.stats["messages_received"] += 1
        try:
            frame = parse_client_frame(raw)
        except UnknownMessageType as e:
            await self.send_error(session, e.message)
            return
        except FrameParseError as e:
            logger.warning(f"Bad frame from {session.session_id}: {e.message}")
            await self.send_error(session, "Invalid message format")
            return

        if isinstance(frame, AuthFrame):
            session.user_id = frame.user_id
            await self.send(session, AuthReplyFrame(status="authenticated", user_id=frame.user_id))

        elif isinstance(frame, SubscribeFrame):
            session.subscriptions.add(frame.channel)
            await self.send(session, SubscriptionFrame(channel=frame.channel, status="subscribed"))

        elif isinstance(frame, UnsubscribeFrame):
            session.subscriptions.discard(frame.channel)
            await self.send(session, SubscriptionFrame(channel=frame.channel, status="unsubscribed"))

        elif isinstance(frame, PingFrame):
            await self.send(session, PongFrame(timestamp=utcnow()))

    # Outbound

    async def send(self, session: ClientSession, frame: Frame) -> bool:
        try:
            await session.websocket.send_text(encode_frame(frame))
        except Exception as e:
            logger.error(f"Error sending to client {session.session_id}: {e}")
            self.stats["errors"] += 1
            return False
        self.stats["messages_sent"] += 1
        return True

    async def send_error(self, session: ClientSession, message: str) -> bool:
        return await self.send(session, ErrorFrame(message=message, timestamp=utcnow()))

    async def broadcast(self, frame: Frame, channel: Optional[str] = None) -> int:
        """Send to every session, or only to those subscribed to ``channel``"""
        sent_count = 0
        for session in list(self.clients.values()):
            if channel is not None and channel not in session.subscriptions:
                continue
            if await self.send(session, frame):
                sent_count += 1

        logger.debug(f"Broadcasted {frame.type} to {sent_count} clients")
        return sent_count

    async def _send_to_user(self, user_id: int, channel: str, frame: Frame) -> int:
        sent_count = 0
        for session in list(self.clients.values()):
            if session.user_id == user_id and channel in session.subscriptions:
                if await self.send(session, frame):
                    sent_count += 1
        return sent_count

    async def send_trade_update(self, user_id: int, trade: Dict[str, Any]) -> int:
        frame = TradeUpdateFrame(data=trade, timestamp=utcnow())
        return await self._send_to_user(user_id, Channel.TRADES.value, frame)

    async def send_strategy_update(self, user_id: int, strategy: Dict[str, Any]) -> int:
        frame = StrategyUpdateFrame(data=strategy, timestamp=utcnow())
        return await self._send_to_user(user_id, Channel.STRATEGIES.value, frame)

    async def send_backtest_update(self, user_id: int, backtest: Dict[str, Any]) -> int:
        frame = BacktestUpdateFrame(data=backtest, timestamp=utcnow())
        return await self._send_to_user(user_id, Channel.BACKTESTS.value, frame)

    async def send_module_update(self, module: Dict[str, Any]) -> int:
        frame = ModuleUpdateFrame(data=module, timestamp=utcnow())
        return await self.broadcast(frame, Channel.MODULES.value)

    # Periodic publishing

    def subscribed_symbols(self) -> List[str]:
        symbols = set()
        for session in self.clients.values():
            for channel in session.subscriptions:
                if channel.startswith(QUOTE_CHANNEL_PREFIX):
                    symbols.add(channel[len(QUOTE_CHANNEL_PREFIX):])
        return sorted(symbols)

    async def publish_market_data(self) -> None:
        """Push a quote to every subscribed symbol channel, then the market status"""
        if self.quote_provider is not None:
            for symbol in self.subscribed_symbols():
                channel = quote_channel(symbol)
                try:
                    quote = await self.quote_provider(symbol)
                    frame = MarketDataFrame(channel=channel, data=quote, timestamp=utcnow())
                except ValidationError as e:
                    error = ProviderError("quote", "invalid quote payload", {"symbol": symbol, "errors": e.error_count()})
                    logger.bind(**error.details).error(f"Error fetching quote for {symbol}: {error.message}")
                    self.stats["provider_errors"] += 1
                    continue
                except Exception as e:
                    error = ProviderError("quote", str(e), {"symbol": symbol})
                    logger.error(f"Error fetching quote for {symbol}: {error.message}")
                    self.stats["provider_errors"] += 1
                    continue

                await self.broadcast(frame, channel)

        now = utcnow()
        await self.broadcast(
            MarketStatusFrame(
                data={"status": self._market_status(), "timestamp": now.isoformat()},
                timestamp=now
            ),
            Channel.MARKET_STATUS.value
        )

    async def publish_portfolios(self) -> int:
        """Push a portfolio snapshot to authenticated sessions watching ``portfolio``"""
        if self.portfolio_provider is None:
            return 0

        sent_count = 0
        for session in list(self.clients.values()):
            if session.user_id is None or Channel.PORTFOLIO.value not in session.subscriptions:
                continue
            try:
                snapshot = await self.portfolio_provider(session.user_id)
                frame = PortfolioUpdateFrame(data=snapshot, timestamp=utcnow())
            except ValidationError as e:
                error = ProviderError("portfolio", "invalid portfolio payload", {"user_id": session.user_id, "errors": e.error_count()})
                logger.bind(**error.details).error(f"Error updating portfolio for user {session.user_id}: {error.message}")
                self.stats["provider_errors"] += 1
                continue
            except Exception as e:
                error = ProviderError("portfolio", str(e), {"user_id": session.user_id})
                logger.error(f"Error updating portfolio for user {session.user_id}: {error.message}")
                self.stats["provider_errors"] += 1
                continue

            if await self.send(session, frame):
                sent_count += 1
        return sent_count

    async def _run_periodic(self, name: str, interval: float, job: Callable[[], Awaitable[Any]]) -> None:
        while self.is_running:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception as e:
                logger.error(f"Error in {name} loop: {e}")

    async def start(self) -> None:
        if self.is_running:
            return
        self.is_running = True
        self._tasks = [
            asyncio.create_task(self._run_periodic("market data", self.market_data_interval, self.publish_market_data)),
            asyncio.create_task(self._run_periodic("portfolio", self.portfolio_update_interval, self.publish_portfolios)),
        ]
        logger.info("Push hub started")

    async def stop(self) -> None:
        self.is_running = False
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Push hub stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Get connection and usage statistics"""
        return {
            **self.stats,
            "active_connections": len(self.clients),
            "running": self.is_running,
            "connection_details": [
                {
                    "session_id": session.session_id,
                    "user_id": session.user_id,
                    "connected_at": session.connected_at.isoformat(),
                    "subscriptions": sorted(session.subscriptions)
                }
                for session in self.clients.values()
            ]
        }


__all__ = ["ClientSession", "PushHub", "QuoteProvider", "PortfolioProvider"]
