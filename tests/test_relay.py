import pytest

from conftest import BrokenTransport, RecordingTransport, chat_message
from realtime.relay import RelayConfig, RoomRelay


async def _identified(relay, connection_id, user_id, *rooms):
    transport = RecordingTransport()
    relay.connect(connection_id, transport)
    await relay.dispatch(connection_id, "setup", {"_id": user_id})
    for room in rooms:
        await relay.dispatch(connection_id, "join chat", room)
    transport.sent.clear()
    return transport


@pytest.mark.asyncio
async def test_setup_acknowledges_only_the_sender(relay):
    a = RecordingTransport()
    b = RecordingTransport()
    relay.connect("a", a)
    relay.connect("b", b)

    delivered = await relay.dispatch("a", "setup", {"_id": "u1"})

    assert delivered == 1
    assert a.sent == [("connected", None)]
    assert b.sent == []


@pytest.mark.asyncio
async def test_setup_without_identity_is_not_acknowledged(relay, registry):
    a = RecordingTransport()
    relay.connect("a", a)

    assert await relay.dispatch("a", "setup", {}) == 0

    assert a.sent == []
    assert not registry.get("a").identified


@pytest.mark.asyncio
async def test_repeated_setup_leaves_state_unchanged(relay, registry):
    await _identified(relay, "a", "u1")
    stats = registry.stats()

    await relay.dispatch("a", "setup", {"_id": "u1"})

    assert registry.stats() == stats
    assert registry.resolve("u1") == {registry.get("a")}


@pytest.mark.asyncio
async def test_message_reaches_recipient_but_not_sender(relay):
    a = await _identified(relay, "a", "u1", "room1")
    b = await _identified(relay, "b", "u2", "room1")
    message = chat_message("u1", ["u1", "u2"], chat_id="room1")

    delivered = await relay.dispatch("a", "new message", message)

    assert delivered == 1
    assert b.sent == [("message recieved", message)]
    assert a.sent == []


@pytest.mark.asyncio
async def test_message_skips_all_of_the_senders_devices(relay):
    phone = await _identified(relay, "phone", "u1")
    laptop = await _identified(relay, "laptop", "u1")
    other = await _identified(relay, "other", "u2")

    await relay.dispatch("phone", "new message", chat_message("u1", ["u1", "u2"]))

    assert phone.sent == []
    assert laptop.sent == []
    assert other.events() == ["message recieved"]


@pytest.mark.asyncio
async def test_message_never_echoes_to_sender_in_recipient_room(relay):
    # u1's connection sits in u2's private room as well
    a = await _identified(relay, "a", "u1", "u2")
    b = await _identified(relay, "b", "u2")

    await relay.dispatch("a", "new message", chat_message("u1", ["u1", "u2"]))

    assert a.sent == []
    assert b.events() == ["message recieved"]


@pytest.mark.asyncio
async def test_message_fans_out_to_every_device_once(relay):
    await _identified(relay, "a", "u1")
    phone = await _identified(relay, "phone", "u2")
    # Also joined u3's private room: still only one copy
    laptop = await _identified(relay, "laptop", "u2", "u3")
    third = await _identified(relay, "c", "u3")

    delivered = await relay.dispatch("a", "new message", chat_message("u1", ["u1", "u2", "u3"]))

    assert delivered == 3
    assert phone.events() == ["message recieved"]
    assert laptop.events() == ["message recieved"]
    assert third.events() == ["message recieved"]


@pytest.mark.asyncio
async def test_message_to_offline_recipient_is_dropped(relay):
    a = await _identified(relay, "a", "u1")

    assert await relay.dispatch("a", "new message", chat_message("u1", ["u1", "offline"])) == 0
    assert a.sent == []


@pytest.mark.asyncio
async def test_malformed_message_is_dropped_without_side_effects(relay, registry):
    a = await _identified(relay, "a", "u1", "room1")
    b = await _identified(relay, "b", "u2", "room1")
    stats = registry.stats()

    assert await relay.dispatch("a", "new message", chat_message("u1", [])) == 0

    assert a.sent == [] and b.sent == []
    assert registry.stats() == stats
    # The relay keeps working afterwards
    await relay.dispatch("a", "typing", "room1")
    assert b.events() == ["typing"]


@pytest.mark.asyncio
async def test_typing_reaches_other_room_members(relay):
    a = await _identified(relay, "a", "u1", "room1")
    b = await _identified(relay, "b", "u2", "room1")

    await relay.dispatch("a", "typing", "room1")
    await relay.dispatch("a", "stop typing", "room1")

    assert b.sent == [("typing", "room1"), ("stop typing", "room1")]
    assert a.sent == []


@pytest.mark.asyncio
async def test_typing_reaches_every_device_of_a_member(relay):
    await _identified(relay, "a", "u1", "room1")
    c1 = await _identified(relay, "c1", "u2", "room1")
    c2 = await _identified(relay, "c2", "u2", "room1")

    assert await relay.dispatch("a", "typing", "room1") == 2

    assert c1.events() == ["typing"]
    assert c2.events() == ["typing"]


@pytest.mark.asyncio
async def test_typing_excludes_only_the_sending_connection(relay):
    phone = await _identified(relay, "phone", "u1", "room1")
    laptop = await _identified(relay, "laptop", "u1", "room1")

    await relay.dispatch("phone", "typing", "room1")

    assert phone.sent == []
    assert laptop.events() == ["typing"]


@pytest.mark.asyncio
async def test_typing_skips_connections_outside_the_room(relay):
    await _identified(relay, "a", "u1", "room1")
    c = await _identified(relay, "c", "u3")

    await relay.dispatch("a", "typing", "room1")

    assert c.sent == []


@pytest.mark.asyncio
async def test_disconnected_member_receives_nothing(relay, registry):
    a = await _identified(relay, "a", "u1", "room1")
    b = await _identified(relay, "b", "u2", "room1")
    c = await _identified(relay, "c", "u3", "room1")

    assert relay.disconnect("a") is True
    await relay.dispatch("b", "typing", "room1")

    assert a.sent == []
    assert c.events() == ["typing"]
    assert b.sent == []
    assert relay.disconnect("a") is False


@pytest.mark.asyncio
async def test_events_from_unknown_connection_are_dropped(relay):
    b = await _identified(relay, "b", "u2", "room1")

    assert await relay.dispatch("ghost", "typing", "room1") == 0
    assert b.sent == []


@pytest.mark.asyncio
async def test_failed_send_does_not_abort_fan_out(relay, registry):
    await _identified(relay, "a", "u1", "room1")
    relay.connect("broken", BrokenTransport())
    registry.join_room(registry.get("broken"), "room1")
    b = await _identified(relay, "b", "u2", "room1")

    delivered = await relay.dispatch("a", "typing", "room1")

    assert delivered == 1
    assert b.events() == ["typing"]


@pytest.mark.asyncio
async def test_fan_out_skips_connection_closed_mid_delivery(relay, registry):
    c = await _identified(relay, "c", "u3")

    class ClosingTransport(RecordingTransport):
        async def emit(self, event, data=None):
            await super().emit(event, data)
            relay.disconnect("c")

    b_transport = ClosingTransport()
    b = relay.connect("b", b_transport)

    delivered = await relay.fan_out([b, registry.get("c")], "typing", "room1")

    assert delivered == 1
    assert b_transport.events() == ["typing"]
    assert c.sent == []


@pytest.mark.asyncio
async def test_shutdown_clears_registry(relay, registry):
    await _identified(relay, "a", "u1", "room1")

    relay.shutdown()

    assert relay.stats() == {"connections": 0, "identified_users": 0, "rooms": 0}


def test_relay_defaults():
    relay = RoomRelay()

    assert relay.config == RelayConfig()
    assert relay.config.ping_timeout == 60
    assert len(relay.registry) == 0


@pytest.mark.asyncio
async def test_chat_member_without_id_does_not_block_delivery(relay):
    a = await _identified(relay, "a", "u1")
    b = await _identified(relay, "b", "u2")
    message = chat_message("u1", ["u1", "u2"])
    message["chat"]["users"].append({"_id": ""})
    message["chat"]["users"].append({"name": "left the chat"})

    delivered = await relay.dispatch("a", "new message", message)

    assert delivered == 1
    assert b.sent == [("message recieved", message)]
    assert a.sent == []
