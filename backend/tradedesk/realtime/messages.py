"""
Push-update wire frames
JSON text frames exchanged between the dashboard client and the push hub
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from tradedesk.core.exceptions import FrameParseError, UnknownMessageType


class MessageType(str, Enum):
    """Inbound (server to client) frame types"""
    # Data frames
    MARKET_DATA = "market_data"
    PORTFOLIO_UPDATE = "portfolio_update"
    TRADE_UPDATE = "trade_update"
    STRATEGY_UPDATE = "strategy_update"
    BACKTEST_UPDATE = "backtest_update"
    MODULE_UPDATE = "module_update"
    MARKET_STATUS = "market_status"

    # Control frames
    CONNECTION = "connection"
    AUTH = "auth"
    SUBSCRIPTION = "subscription"
    ERROR = "error"
    PONG = "pong"


class ClientMessageType(str, Enum):
    """Outbound (client to server) frame types"""
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    AUTH = "auth"
    PING = "ping"


class Channel(str, Enum):
    """Fixed channel names"""
    PORTFOLIO = "portfolio"
    TRADES = "trades"
    STRATEGIES = "strategies"
    BACKTESTS = "backtests"
    MODULES = "modules"
    MARKET_STATUS = "market_status"


# Data frame types that route to a hard-coded channel, ignoring any channel field
FIXED_CHANNELS: Dict[MessageType, str] = {
    MessageType.PORTFOLIO_UPDATE: Channel.PORTFOLIO.value,
    MessageType.TRADE_UPDATE: Channel.TRADES.value,
    MessageType.STRATEGY_UPDATE: Channel.STRATEGIES.value,
    MessageType.BACKTEST_UPDATE: Channel.BACKTESTS.value,
    MessageType.MODULE_UPDATE: Channel.MODULES.value,
    MessageType.MARKET_STATUS: Channel.MARKET_STATUS.value,
}

CONTROL_MESSAGE_TYPES = frozenset({
    MessageType.CONNECTION,
    MessageType.AUTH,
    MessageType.SUBSCRIPTION,
    MessageType.ERROR,
    MessageType.PONG,
})

QUOTE_CHANNEL_PREFIX = "quote:"


def quote_channel(symbol: str) -> str:
    """Channel name carrying live quotes for a symbol"""
    return f"{QUOTE_CHANNEL_PREFIX}{symbol}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Frame(BaseModel):
    """Base for every wire frame"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# Payloads

class Quote(BaseModel):
    """Live quote for one instrument"""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    symbol: str
    ltp: Optional[float] = None
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    prev_close: Optional[float] = Field(default=None, alias="prevClose")
    change: Optional[float] = None
    change_percent: Optional[float] = Field(default=None, alias="changePercent")
    volume: Optional[int] = None


class PortfolioSnapshot(BaseModel):
    """Open positions and account balances for one user"""
    model_config = ConfigDict(extra="allow")

    positions: List[Dict[str, Any]] = Field(default_factory=list)
    account: Optional[Dict[str, Any]] = None


# Inbound frames

class ServerFrame(Frame):
    channel: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("timestamp", mode="wrap")
    @classmethod
    def lenient_timestamp(cls, value, handler):
        # Unparseable timestamps are discarded, not the frame
        try:
            return handler(value)
        except ValidationError:
            return None


class MarketDataFrame(ServerFrame):
    type: Literal["market_data"] = "market_data"
    channel: str
    data: Quote


class PortfolioUpdateFrame(ServerFrame):
    type: Literal["portfolio_update"] = "portfolio_update"
    data: PortfolioSnapshot


class TradeUpdateFrame(ServerFrame):
    type: Literal["trade_update"] = "trade_update"
    data: Dict[str, Any]


class StrategyUpdateFrame(ServerFrame):
    type: Literal["strategy_update"] = "strategy_update"
    data: Dict[str, Any]


class BacktestUpdateFrame(ServerFrame):
    type: Literal["backtest_update"] = "backtest_update"
    data: Dict[str, Any]


class ModuleUpdateFrame(ServerFrame):
    type: Literal["module_update"] = "module_update"
    data: Dict[str, Any]


class MarketStatusFrame(ServerFrame):
    type: Literal["market_status"] = "market_status"
    data: Dict[str, Any]


class ConnectionFrame(ServerFrame):
    type: Literal["connection"] = "connection"
    status: Optional[str] = None
    data: Optional[Any] = None


class AuthReplyFrame(ServerFrame):
    type: Literal["auth"] = "auth"
    status: Optional[str] = None
    user_id: Optional[int] = Field(default=None, alias="userId")
    data: Optional[Any] = None


class SubscriptionFrame(ServerFrame):
    type: Literal["subscription"] = "subscription"
    status: Optional[str] = None
    data: Optional[Any] = None


class ErrorFrame(ServerFrame):
    type: Literal["error"] = "error"
    message: Optional[str] = None
    data: Optional[Any] = None


class PongFrame(ServerFrame):
    type: Literal["pong"] = "pong"
    data: Optional[Any] = None


ServerMessage = Annotated[
    Union[
        MarketDataFrame,
        PortfolioUpdateFrame,
        TradeUpdateFrame,
        StrategyUpdateFrame,
        BacktestUpdateFrame,
        ModuleUpdateFrame,
        MarketStatusFrame,
        ConnectionFrame,
        AuthReplyFrame,
        SubscriptionFrame,
        ErrorFrame,
        PongFrame,
    ],
    Field(discriminator="type"),
]


# Outbound frames

class SubscribeFrame(Frame):
    type: Literal["subscribe"] = "subscribe"
    channel: str


class UnsubscribeFrame(Frame):
    type: Literal["unsubscribe"] = "unsubscribe"
    channel: str


class AuthFrame(Frame):
    type: Literal["auth"] = "auth"
    user_id: int = Field(alias="userId")


class PingFrame(Frame):
    type: Literal["ping"] = "ping"


ClientMessage = Annotated[
    Union[SubscribeFrame, UnsubscribeFrame, AuthFrame, PingFrame],
    Field(discriminator="type"),
]

_server_adapter = TypeAdapter(ServerMessage)
_client_adapter = TypeAdapter(ClientMessage)

_SERVER_TYPES = frozenset(t.value for t in MessageType)
_CLIENT_TYPES = frozenset(t.value for t in ClientMessageType)


def _decode(raw: Union[str, bytes]) -> Dict[str, Any]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise FrameParseError("Frame is not valid JSON", {"error": str(e)})
    if not isinstance(payload, dict):
        raise FrameParseError("Frame is not a JSON object", {"frame_type": type(payload).__name__})
    return payload


def _validate(adapter: TypeAdapter, known_types: frozenset, raw: Union[str, bytes]):
    payload = _decode(raw)
    message_type = payload.get("type")
    if not isinstance(message_type, str) or message_type not in known_types:
        raise UnknownMessageType(message_type)
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        raise FrameParseError(
            f"Invalid {message_type} frame",
            {"type": message_type, "error_count": e.error_count(), "error": str(e)}
        )


def parse_server_frame(raw: Union[str, bytes]) -> ServerFrame:
    """Decode and validate one inbound frame.

    Raises UnknownMessageType when the ``type`` discriminator is not routed
    and FrameParseError when the text is not JSON or the payload is invalid.
    """
    return _validate(_server_adapter, _SERVER_TYPES, raw)


def parse_client_frame(raw: Union[str, bytes]) -> Frame:
    """Decode and validate one frame sent by a dashboard client"""
    return _validate(_client_adapter, _CLIENT_TYPES, raw)


def encode_frame(frame: Frame) -> str:
    """Serialize a frame as wire JSON"""
    return frame.model_dump_json(by_alias=True, exclude_none=True)


__all__ = [
    "MessageType",
    "ClientMessageType",
    "Channel",
    "FIXED_CHANNELS",
    "CONTROL_MESSAGE_TYPES",
    "quote_channel",
    "utcnow",
    "Frame",
    "Quote",
    "PortfolioSnapshot",
    "ServerFrame",
    "MarketDataFrame",
    "PortfolioUpdateFrame",
    "TradeUpdateFrame",
    "StrategyUpdateFrame",
    "BacktestUpdateFrame",
    "ModuleUpdateFrame",
    "MarketStatusFrame",
    "ConnectionFrame",
    "AuthReplyFrame",
    "SubscriptionFrame",
    "ErrorFrame",
    "PongFrame",
    "SubscribeFrame",
    "UnsubscribeFrame",
    "AuthFrame",
    "PingFrame",
    "parse_server_frame",
    "parse_client_frame",
    "encode_frame",
]
