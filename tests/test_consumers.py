import asyncio

from channels.testing import WebsocketCommunicator

from realtime.consumers import SyncConsumer

from conftest import GRACE_SECONDS


async def _join(communicator, session_id, role, **extra):
    await communicator.send_json_to({"type": "join", "session_id": session_id, "role": role, **extra})
    return await communicator.receive_json_from()


async def _view(communicator, lat, lng, zoom):
    await communicator.send_json_to({"type": "view_update", "latitude": lat, "longitude": lng, "zoom": zoom})


async def test_connect_greets_with_connection_id(application):
    communicator = WebsocketCommunicator(application, "/ws/sync/")
    connected, _ = await communicator.connect()
    assert connected
    hello = await communicator.receive_json_from()
    assert hello["type"] == "connected"
    assert hello["connection_id"]
    await communicator.disconnect()


async def test_join_ok_then_presence(connect):
    source = await connect()

    ok = await _join(source, "abcd1234", "source")
    presence = await source.receive_json_from()

    assert ok["type"] == "join_ok"
    assert ok["session_id"] == "ABCD1234"
    assert ok["role"] == "source"
    assert ok["participant_token"]
    assert "last_view" not in ok
    assert presence == {"type": "presence", "source_connected": True, "follower_connected": False}
    await source.disconnect()


async def test_role_aliases_are_accepted(connect):
    tracker = await connect()
    ok = await _join(tracker, "ABCD", "tracker")
    assert ok["role"] == "source"
    await tracker.disconnect()


async def test_second_source_is_rejected(connect):
    first = await connect()
    await _join(first, "ABCD", "source")
    await first.receive_json_from()

    second = await connect()
    rejected = await _join(second, "ABCD", "source")

    assert rejected["type"] == "join_rejected"
    assert rejected["reason"] == "role_taken"
    assert rejected["message"] == "Source role already taken in this session."
    assert await first.receive_nothing()
    await first.disconnect()
    await second.disconnect()


async def test_view_is_relayed_to_follower(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()

    follower = await connect()
    await _join(follower, "ABCD", "follower")
    assert (await follower.receive_json_from())["type"] == "presence"
    assert (await source.receive_json_from())["follower_connected"] is True

    await _view(source, 40.7128, -74.006, 13)
    update = await follower.receive_json_from()

    assert update["type"] == "view_sync"
    assert (update["latitude"], update["longitude"], update["zoom"]) == (40.7128, -74.006, 13)
    assert isinstance(update["timestamp"], int)
    assert await source.receive_nothing()
    await source.disconnect()
    await follower.disconnect()


async def test_follower_receives_updates_in_order(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    follower = await connect()
    await _join(follower, "ABCD", "follower")
    await follower.receive_json_from()

    for zoom in range(1, 11):
        await _view(source, 10.0, 20.0, zoom)
    received = [(await follower.receive_json_from())["zoom"] for _ in range(10)]

    assert received == list(range(1, 11))
    await source.disconnect()
    await follower.disconnect()


async def test_late_follower_gets_current_view(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    await _view(source, 48.8566, 2.3522, 12)
    # resync round-trip makes sure the update was processed before the follower joins
    await source.send_json_to({"type": "resync_request"})
    assert (await source.receive_json_from())["type"] == "view_sync"

    follower = await connect()
    ok = await _join(follower, "ABCD", "follower")
    presence = await follower.receive_json_from()
    initial = await follower.receive_json_from()

    assert ok["last_view"]["latitude"] == 48.8566
    assert presence["type"] == "presence"
    assert initial["type"] == "view_sync"
    assert initial["zoom"] == 12
    await source.disconnect()
    await follower.disconnect()


async def test_view_update_from_follower_is_ignored(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    follower = await connect()
    await _join(follower, "ABCD", "follower")
    await follower.receive_json_from()
    await source.receive_json_from()

    await _view(follower, 1.0, 2.0, 3.0)

    assert await follower.receive_nothing()
    assert await source.receive_nothing()
    await source.disconnect()
    await follower.disconnect()


async def test_view_update_before_join_is_ignored(connect):
    lonely = await connect()
    await _view(lonely, 1.0, 2.0, 3.0)
    assert await lonely.receive_nothing()
    await lonely.disconnect()


async def test_source_disconnect_sends_source_lost_then_presence(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    follower = await connect()
    await _join(follower, "ABCD", "follower")
    await follower.receive_json_from()

    await source.disconnect()

    assert (await follower.receive_json_from())["type"] == "source_lost"
    assert await follower.receive_json_from() == {
        "type": "presence",
        "source_connected": False,
        "follower_connected": True,
    }
    await follower.disconnect()


async def test_resync_reaches_only_the_requester(connect):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    follower = await connect()
    await _join(follower, "ABCD", "follower")
    await follower.receive_json_from()
    await source.receive_json_from()
    await _view(source, 1.0, 2.0, 3.0)
    await follower.receive_json_from()

    await follower.send_json_to({"type": "resync_request"})

    resent = await follower.receive_json_from()
    assert resent["type"] == "view_sync"
    assert resent["zoom"] == 3.0
    assert await source.receive_nothing()
    await source.disconnect()
    await follower.disconnect()


async def test_malformed_frames_get_error_replies(connect):
    communicator = await connect()

    await communicator.send_to(text_data="{not json")
    assert (await communicator.receive_json_from())["error"] == "invalid_json"

    await communicator.send_to(text_data="[1, 2]")
    assert (await communicator.receive_json_from())["error"] == "invalid_message"

    await communicator.send_json_to({"type": "teleport"})
    reply = await communicator.receive_json_from()
    assert reply == {"type": "error", "error": "unknown_type", "message": "Unknown message type: teleport"}

    await communicator.send_json_to({"type": "join", "session_id": "ABCD", "role": "pilot"})
    assert (await communicator.receive_json_from())["error"] == "invalid_message"
    await communicator.disconnect()


async def test_short_session_id_is_rejected(connect):
    communicator = await connect()
    rejected = await _join(communicator, " ab ", "follower")
    assert rejected["reason"] == "invalid_session_id"
    await communicator.disconnect()


async def test_role_switch_on_same_connection_is_locked(connect):
    communicator = await connect()
    await _join(communicator, "ABCD", "source")
    await communicator.receive_json_from()

    rejected = await _join(communicator, "ABCD", "follower")

    assert rejected["reason"] == "role_locked"
    await communicator.disconnect()


async def test_token_takeover_revokes_and_closes_old_socket(connect):
    old = await connect()
    ok = await _join(old, "ABCD", "source")
    await old.receive_json_from()

    new = await connect()
    taken = await _join(new, "ABCD", "source", participant_token=ok["participant_token"])

    assert taken["type"] == "join_ok"
    assert taken["participant_token"] == ok["participant_token"]
    assert await old.receive_json_from() == {"type": "role_revoked", "reason": "superseded"}
    closed = await old.receive_output()
    assert closed["type"] == "websocket.close"
    assert closed["code"] == SyncConsumer.CLOSE_CODE_SUPERSEDED
    assert (await new.receive_json_from())["source_connected"] is True
    await old.disconnect()
    await new.disconnect()


async def test_empty_session_reaped_after_grace(connect, registry):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    await source.disconnect()
    assert "ABCD" in registry

    await asyncio.sleep(GRACE_SECONDS * 4)

    assert "ABCD" not in registry


async def test_rejoin_within_grace_keeps_last_view(connect, registry):
    source = await connect()
    await _join(source, "ABCD", "source")
    await source.receive_json_from()
    await _view(source, 35.6762, 139.6503, 11)
    await source.send_json_to({"type": "resync_request"})
    await source.receive_json_from()
    await source.disconnect()

    follower = await connect()
    ok = await _join(follower, "ABCD", "follower")
    await follower.receive_json_from()
    initial = await follower.receive_json_from()

    assert ok["last_view"]["zoom"] == 11
    assert initial["latitude"] == 35.6762
    await asyncio.sleep(GRACE_SECONDS * 4)
    assert "ABCD" in registry
    await follower.disconnect()


async def _paired(connect, session_id="ABCD"):
    source = await connect()
    await _join(source, session_id, "source")
    await source.receive_json_from()
    follower = await connect()
    await _join(follower, session_id, "follower")
    await follower.receive_json_from()
    await source.receive_json_from()
    return source, follower


async def test_out_of_range_views_are_refused(connect, registry):
    source, follower = await _paired(connect)
    bad_views = [
        {"latitude": 91, "longitude": 0, "zoom": 3},
        {"latitude": 0, "longitude": -180.5, "zoom": 3},
        {"latitude": 0, "longitude": 0, "zoom": -1},
        {"latitude": "NaN", "longitude": 0, "zoom": 3},
        {"latitude": 0, "longitude": 0, "zoom": "inf"},
    ]

    for view in bad_views:
        await source.send_json_to({"type": "view_update", **view})
        reply = await source.receive_json_from()
        assert reply["type"] == "error"
        assert reply["error"] == "invalid_message"

    assert await follower.receive_nothing()
    assert registry.get("ABCD").last_view is None
    await source.disconnect()
    await follower.disconnect()


async def test_lat_lng_aliases_are_accepted(connect, registry):
    source, follower = await _paired(connect)

    await source.send_json_to({"type": "view_update", "lat": -33.8688, "lng": 151.2093, "zoom": 9})
    update = await follower.receive_json_from()

    assert update["latitude"] == -33.8688
    assert update["longitude"] == 151.2093
    assert "lat" not in update
    assert registry.get("ABCD").last_view.zoom == 9
    await source.disconnect()
    await follower.disconnect()
