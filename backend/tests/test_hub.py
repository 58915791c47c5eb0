"""
Tests for the PushHub: control frames, targeted updates and periodic publishing.
"""

import asyncio
import json

from tradedesk.realtime.hub import PushHub
from tradedesk.realtime.messages import PortfolioSnapshot, Quote


class FakeWebSocket:

    def __init__(self, fail=False):
        self.frames = []
        self.fail = fail

    async def send_text(self, text):
        if self.fail:
            raise RuntimeError("socket gone")
        self.frames.append(json.loads(text))

    @property
    def last(self):
        return self.frames[-1]


async def connected(hub, user_id=None, channels=()):
    websocket = FakeWebSocket()
    session = await hub.register(websocket)
    if user_id is not None:
        await hub.handle_frame(session, json.dumps({"type": "auth", "userId": user_id}))
    for channel in channels:
        await hub.handle_frame(session, json.dumps({"type": "subscribe", "channel": channel}))
    websocket.frames.clear()
    return session, websocket


class TestControlFrames:

    def test_register_confirms_connection(self):
        async def scenario():
            hub = PushHub()
            websocket = FakeWebSocket()
            session = await hub.register(websocket)

            assert websocket.last["type"] == "connection"
            assert websocket.last["status"] == "connected"
            assert "timestamp" in websocket.last
            assert hub.clients == {session.session_id: session}
            assert hub.get_stats()["active_connections"] == 1

        asyncio.run(scenario())

    def test_auth_subscribe_unsubscribe_ping(self):
        async def scenario():
            hub = PushHub()
            session, websocket = await connected(hub)

            await hub.handle_frame(session, '{"type": "auth", "userId": 12}')
            assert session.user_id == 12
            assert websocket.last == {"type": "auth", "status": "authenticated", "userId": 12}

            await hub.handle_frame(session, '{"type": "subscribe", "channel": "trades"}')
            assert session.subscriptions == {"trades"}
            assert websocket.last == {"type": "subscription", "channel": "trades", "status": "subscribed"}

            await hub.handle_frame(session, '{"type": "unsubscribe", "channel": "trades"}')
            assert session.subscriptions == set()
            assert websocket.last["status"] == "unsubscribed"

            await hub.handle_frame(session, '{"type": "ping"}')
            assert websocket.last["type"] == "pong"

        asyncio.run(scenario())

    def test_bad_frames_get_error_replies(self):
        async def scenario():
            hub = PushHub()
            session, websocket = await connected(hub)

            await hub.handle_frame(session, "garbage")
            assert websocket.last["type"] == "error"
            assert websocket.last["message"] == "Invalid message format"

            await hub.handle_frame(session, '{"type": "teleport"}')
            assert websocket.last["message"] == "Unknown message type: teleport"
            assert hub.stats["messages_received"] == 2

        asyncio.run(scenario())

    def test_unregister(self):
        async def scenario():
            hub = PushHub()
            session, _ = await connected(hub)
            hub.unregister(session)
            hub.unregister(session)
            assert hub.clients == {}
            assert hub.stats["active_connections"] == 0

        asyncio.run(scenario())


class TestFanOut:

    def test_broadcast_respects_channel(self):
        async def scenario():
            hub = PushHub()
            _, watching = await connected(hub, channels=["modules"])
            _, idle = await connected(hub)

            sent = await hub.send_module_update({"name": "scanner", "status": "error"})

            assert sent == 1
            assert watching.last["type"] == "module_update"
            assert watching.last["data"] == {"name": "scanner", "status": "error"}
            assert idle.frames == []

        asyncio.run(scenario())

    def test_user_updates_need_matching_user_and_channel(self):
        async def scenario():
            hub = PushHub()
            _, owner = await connected(hub, user_id=1, channels=["trades", "strategies", "backtests"])
            _, other_user = await connected(hub, user_id=2, channels=["trades"])
            _, not_subscribed = await connected(hub, user_id=1)

            assert await hub.send_trade_update(1, {"id": 5, "side": "BUY"}) == 1
            assert await hub.send_strategy_update(1, {"id": 6}) == 1
            assert await hub.send_backtest_update(1, {"id": 7}) == 1

            assert [frame["type"] for frame in owner.frames] == [
                "trade_update", "strategy_update", "backtest_update"
            ]
            assert other_user.frames == []
            assert not_subscribed.frames == []

        asyncio.run(scenario())

    def test_send_failure_is_counted_not_raised(self):
        async def scenario():
            hub = PushHub()
            session = await hub.register(FakeWebSocket(fail=True))
            session.subscriptions.add("modules")

            assert await hub.send_module_update({"name": "x"}) == 0
            assert hub.stats["errors"] == 2  # connection confirmation + update

        asyncio.run(scenario())


class TestPublishing:

    def test_market_data_for_subscribed_symbols(self):
        async def scenario():
            requested = []

            async def quotes(symbol):
                requested.append(symbol)
                if symbol == "BAD":
                    raise RuntimeError("feed down")
                return Quote(symbol=symbol, ltp=100.0)

            hub = PushHub(quote_provider=quotes, market_status=lambda: "OPEN")
            _, infy = await connected(hub, channels=["quote:INFY", "market_status"])
            _, bad = await connected(hub, channels=["quote:BAD", "quote:INFY"])

            await hub.publish_market_data()

            assert requested == ["BAD", "INFY"]
            assert infy.frames[0]["type"] == "market_data"
            assert infy.frames[0]["channel"] == "quote:INFY"
            assert infy.frames[0]["data"] == {"symbol": "INFY", "ltp": 100.0}
            assert infy.frames[1]["type"] == "market_status"
            assert infy.frames[1]["data"]["status"] == "OPEN"
            assert [frame["channel"] for frame in bad.frames] == ["quote:INFY"]

        asyncio.run(scenario())

    def test_market_status_without_quote_provider(self):
        async def scenario():
            hub = PushHub(market_status=lambda: "CLOSED_WEEKEND")
            _, websocket = await connected(hub, channels=["market_status", "quote:INFY"])

            await hub.publish_market_data()

            assert len(websocket.frames) == 1
            assert websocket.last["data"]["status"] == "CLOSED_WEEKEND"

        asyncio.run(scenario())

    def test_portfolios_go_to_authenticated_subscribers(self):
        async def scenario():
            async def portfolios(user_id):
                if user_id == 3:
                    raise RuntimeError("db timeout")
                return PortfolioSnapshot(positions=[{"symbol": "TCS", "userId": user_id}])

            hub = PushHub(portfolio_provider=portfolios)
            _, alice = await connected(hub, user_id=1, channels=["portfolio"])
            _, anonymous = await connected(hub, channels=["portfolio"])
            _, failing = await connected(hub, user_id=3, channels=["portfolio"])

            assert await hub.publish_portfolios() == 1
            assert alice.last["type"] == "portfolio_update"
            assert alice.last["data"]["positions"] == [{"symbol": "TCS", "userId": 1}]
            assert anonymous.frames == []
            assert failing.frames == []

        asyncio.run(scenario())

    def test_start_runs_loops_and_stop_cancels_them(self):
        async def scenario():
            hub = PushHub(market_data_interval=0.01, portfolio_update_interval=0.01, market_status=lambda: "OPEN")
            _, websocket = await connected(hub, channels=["market_status"])

            await hub.start()
            for _ in range(100):
                if websocket.frames:
                    break
                await asyncio.sleep(0.01)
            await hub.stop()

            assert websocket.frames
            assert hub.is_running is False
            assert hub.get_stats()["running"] is False

        asyncio.run(scenario())


class TestProviderPayloads:

    def test_quote_dicts_are_validated_per_symbol(self):
        async def scenario():
            async def quotes(symbol):
                if symbol == "AAA":
                    return {"ltp": 1.0}
                return {"symbol": symbol, "ltp": 250.5, "prevClose": 248.0}

            hub = PushHub(quote_provider=quotes, market_status=lambda: "OPEN")
            _, websocket = await connected(hub, channels=["quote:AAA", "quote:BBB", "market_status"])

            await hub.publish_market_data()

            assert [frame["type"] for frame in websocket.frames] == ["market_data", "market_status"]
            assert websocket.frames[0]["channel"] == "quote:BBB"
            assert websocket.frames[0]["data"] == {"symbol": "BBB", "ltp": 250.5, "prevClose": 248.0}
            assert hub.stats["provider_errors"] == 1

        asyncio.run(scenario())

    def test_portfolio_dicts_are_validated_per_session(self):
        async def scenario():
            async def portfolios(user_id):
                if user_id == 1:
                    return {"positions": None}
                return {"positions": [{"symbol": "INFY", "qty": 10}], "account": {"cash": 5000}}

            hub = PushHub(portfolio_provider=portfolios)
            _, broken = await connected(hub, user_id=1, channels=["portfolio"])
            _, healthy = await connected(hub, user_id=2, channels=["portfolio"])

            assert await hub.publish_portfolios() == 1
            assert broken.frames == []
            assert healthy.last["type"] == "portfolio_update"
            assert healthy.last["data"] == {
                "positions": [{"symbol": "INFY", "qty": 10}],
                "account": {"cash": 5000}
            }
            assert hub.stats["provider_errors"] == 1

        asyncio.run(scenario())
