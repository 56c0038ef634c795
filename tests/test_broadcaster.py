from ws_server.applib.models.api import Camera
from ws_server.applib.types import PublishRejection, Role


def _camera(lat, lng, zoom):
    return Camera(latitude=lat, longitude=lng, zoom=zoom)


async def test_publish_stores_and_relays_to_follower(services, registry, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.SOURCE, "s", "chan.s")
    await arbiter.try_bind("ABCD", Role.FOLLOWER, "f", "chan.f")

    result = await broadcaster.publish("ABCD", "s", _camera(40.7128, -74.006, 13))

    assert result.accepted
    assert registry.get("ABCD").last_view == result.view
    assert outbox.frames("chan.f")[-1] == {
        "type": "view_sync",
        "latitude": 40.7128,
        "longitude": -74.006,
        "zoom": 13.0,
        "timestamp": 1_700_000_000_000,
    }
    # Nothing echoes back to the source.
    assert "view_sync" not in outbox.types("chan.s")


async def test_publish_without_follower_only_stores(services, registry, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.SOURCE, "s", "chan.s")
    sent_before = len(outbox.sent)

    result = await broadcaster.publish("ABCD", "s", _camera(1, 2, 3))

    assert result.accepted
    assert registry.get("ABCD").last_view.zoom == 3
    assert len(outbox.sent) == sent_before


async def test_publish_from_follower_is_dropped(services, registry, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.SOURCE, "s", "chan.s")
    await arbiter.try_bind("ABCD", Role.FOLLOWER, "f", "chan.f")

    result = await broadcaster.publish("ABCD", "f", _camera(1, 2, 3))

    assert result.rejection is PublishRejection.NOT_SOURCE
    assert registry.get("ABCD").last_view is None
    assert "view_sync" not in outbox.types("chan.f")


async def test_publish_to_missing_session(services):
    _, broadcaster, _ = services
    result = await broadcaster.publish("NOPE", "s", _camera(1, 2, 3))
    assert result.rejection is PublishRejection.SESSION_GONE


async def test_follower_sees_views_in_publish_order(services, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.SOURCE, "s", "chan.s")
    await arbiter.try_bind("ABCD", Role.FOLLOWER, "f", "chan.f")

    for zoom in (5, 6, 7, 8):
        await broadcaster.publish("ABCD", "s", _camera(10, 20, zoom))

    zooms = [f["zoom"] for f in outbox.frames("chan.f") if f["type"] == "view_sync"]
    assert zooms == [5, 6, 7, 8]


async def test_resync_goes_to_requester_only(services, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.SOURCE, "s", "chan.s")
    await arbiter.try_bind("ABCD", Role.FOLLOWER, "f", "chan.f")
    await broadcaster.publish("ABCD", "s", _camera(10, 20, 5))
    follower_frames = len(outbox.frames("chan.f"))

    view = await broadcaster.resync("ABCD", "s", "chan.s")

    assert view.zoom == 5
    assert outbox.types("chan.s")[-1] == "view_sync"
    assert len(outbox.frames("chan.f")) == follower_frames


async def test_resync_without_view_sends_nothing(services, outbox):
    arbiter, broadcaster, _ = services
    await arbiter.try_bind("ABCD", Role.FOLLOWER, "f", "chan.f")
    before = len(outbox.sent)

    assert await broadcaster.resync("ABCD", "f", "chan.f") is None
    assert len(outbox.sent) == before
