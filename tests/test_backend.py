def test_create_user_rejects_duplicate_email(backend):
    user = backend.create_user("Ann", "ann@example.com", "hash", "pic")

    assert user["_id"]
    assert user["isAdmin"] is False
    assert backend.create_user("Ann Again", "ANN@example.com", "hash", "pic") is None
    assert backend.get_user_by_email("Ann@Example.com")["_id"] == user["_id"]


def test_documents_round_trip_with_types(backend):
    user = backend.create_user("007", "bond@example.com", "hash", "pic")

    stored = backend.get_user(user["_id"])

    assert stored == user
    assert stored["name"] == "007"


def test_search_users_matches_name_or_email(backend):
    ann = backend.create_user("Ann", "ann@example.com", "h", "p")
    backend.create_user("Bob", "bob@work.org", "h", "p")
    backend.create_user("Annette", "net@work.org", "h", "p")

    assert [u["name"] for u in backend.search_users("ann")] == ["Ann", "Annette"]
    assert [u["name"] for u in backend.search_users("WORK")] == ["Annette", "Bob"]
    assert [u["name"] for u in backend.search_users("ann", exclude_id=ann["_id"])] == ["Annette"]
    assert len(backend.search_users("")) == 3


def test_find_direct_chat_ignores_groups(backend):
    backend.create_chat("group", ["a", "b", "c"], is_group_chat=True, group_admin="a")
    assert backend.find_direct_chat("a", "b") is None

    direct = backend.create_chat("sender", ["a", "b"])

    assert backend.find_direct_chat("b", "a")["_id"] == direct["_id"]


def test_group_membership_updates_indexes(backend):
    chat = backend.create_chat("group", ["a", "b"], is_group_chat=True, group_admin="a")

    backend.add_user_to_chat(chat["_id"], "c")
    assert [c["_id"] for c in backend.get_chats_for_user("c")] == [chat["_id"]]

    updated = backend.remove_user_from_chat(chat["_id"], "b")
    assert updated["users"] == ["a", "c"]
    assert backend.get_chats_for_user("b") == []


def test_missing_chat_updates_return_none(backend):
    assert backend.update_chat("nope", chatName="x") is None
    assert backend.add_user_to_chat("nope", "a") is None
    assert backend.remove_user_from_chat("nope", "a") is None


def test_create_message_updates_latest_message(backend):
    chat = backend.create_chat("sender", ["a", "b"])

    first = backend.create_message("a", "  hi  ", chat["_id"])
    second = backend.create_message("b", "hey", chat["_id"])

    assert first["content"] == "hi"
    assert [m["_id"] for m in backend.get_messages_for_chat(chat["_id"])] == [first["_id"], second["_id"]]
    assert backend.get_chat(chat["_id"])["latestMessage"] == second["_id"]


def test_populate_message_hides_passwords(backend):
    ann = backend.create_user("Ann", "ann@example.com", "secret-hash", "p")
    bob = backend.create_user("Bob", "bob@example.com", "secret-hash", "p")
    chat = backend.create_chat("sender", [ann["_id"], bob["_id"]])
    message = backend.create_message(ann["_id"], "hi", chat["_id"])

    populated = backend.populate_message(message)

    assert populated["sender"]["name"] == "Ann"
    assert "password" not in populated["sender"]
    assert {u["_id"] for u in populated["chat"]["users"]} == {ann["_id"], bob["_id"]}
    assert all("password" not in u for u in populated["chat"]["users"])


def test_chats_for_user_newest_first(backend):
    older = backend.create_chat("sender", ["a", "b"])
    newer = backend.create_chat("sender", ["a", "c"])
    backend.create_message("a", "bump", older["_id"])

    assert [c["_id"] for c in backend.get_chats_for_user("a")] == [older["_id"], newer["_id"]]
