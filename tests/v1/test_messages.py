# tests/v1/test_messages.py
"""Tests for message-related endpoints."""

from fastapi import status

from fixitnow_chat.repositories.message_repo import MessageRepository


def _post_message(client, sender, receiver, text):
    return client.post(
        "/api/v1/messages",
        json={"senderId": sender.id, "receiverId": receiver.id, "text": text},
    )


def _cid(a, b):
    low, high = sorted((a.id, b.id))
    return f"{low}-{high}"


def test_send_message(client, customer, provider) -> None:
    """Sending returns the stored message enriched with names and the conversation id."""
    response = _post_message(client, customer, provider, "Can you fix my sink tomorrow?")

    assert response.status_code == status.HTTP_201_CREATED
    data = response.json()
    assert data["id"] > 0
    assert data["conversationId"] == _cid(customer, provider)
    assert data["senderId"] == customer.id
    assert data["senderName"] == customer.name
    assert data["receiverId"] == provider.id
    assert data["receiverName"] == provider.name
    assert data["content"] == "Can you fix my sink tomorrow?"
    assert data["messageType"] == "TEXT"
    assert data["isRead"] is False
    assert data["sentAt"]


def test_send_message_accepts_content_field(client, customer, provider) -> None:
    response = client.post(
        "/api/v1/messages",
        json={"senderId": customer.id, "receiverId": provider.id, "content": "hello"},
    )
    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["content"] == "hello"


def test_send_message_to_nonexistent_user(client, customer) -> None:
    response = client.post(
        "/api/v1/messages",
        json={"senderId": customer.id, "receiverId": 999_999, "text": "anyone?"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "Receiver not found" in response.json()["detail"]


def test_send_message_from_nonexistent_user(client, provider) -> None:
    response = client.post(
        "/api/v1/messages",
        json={"senderId": 999_999, "receiverId": provider.id, "text": "hi"},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND
    assert "Sender not found" in response.json()["detail"]


def test_send_blank_message_rejected(client, customer, provider) -> None:
    response = _post_message(client, customer, provider, "   ")
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "empty" in response.json()["detail"]


def test_send_message_to_self_rejected(client, customer) -> None:
    response = _post_message(client, customer, customer, "note to self")
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_send_message_missing_fields(client, customer) -> None:
    response = client.post("/api/v1/messages", json={"senderId": customer.id})
    assert response.status_code == 422


def test_get_conversation_messages_oldest_first(client, customer, provider) -> None:
    for sender, receiver, text in [
        (customer, provider, "one"),
        (provider, customer, "two"),
        (customer, provider, "three"),
    ]:
        assert _post_message(client, sender, receiver, text).status_code == status.HTTP_201_CREATED

    response = client.get(f"/api/v1/messages/conversation/{_cid(customer, provider)}")

    assert response.status_code == status.HTTP_200_OK
    assert [m["content"] for m in response.json()] == ["one", "two", "three"]


def test_conversation_id_order_does_not_matter(client, customer, provider) -> None:
    _post_message(client, customer, provider, "hi")
    low, high = sorted((customer.id, provider.id))

    forward = client.get(f"/api/v1/messages/conversation/{low}-{high}").json()
    backward = client.get(f"/api/v1/messages/conversation/{high}-{low}").json()

    assert forward == backward
    assert len(forward) == 1


def test_conversation_history_excludes_other_pairs(client, customer, provider, third_user) -> None:
    _post_message(client, customer, provider, "for provider")
    _post_message(client, customer, third_user, "for third")

    response = client.get(f"/api/v1/messages/conversation/{_cid(customer, provider)}")

    assert [m["content"] for m in response.json()] == ["for provider"]


def test_conversation_history_paging(client, customer, provider) -> None:
    ids = [_post_message(client, customer, provider, f"m{i}").json()["id"] for i in range(5)]
    cid = _cid(customer, provider)

    latest = client.get(f"/api/v1/messages/conversation/{cid}", params={"limit": 2}).json()
    assert [m["content"] for m in latest] == ["m3", "m4"]

    older = client.get(
        f"/api/v1/messages/conversation/{cid}",
        params={"limit": 2, "before": ids[3]},
    ).json()
    assert [m["content"] for m in older] == ["m1", "m2"]


def test_malformed_conversation_id_never_reaches_store(client, customer, mocker) -> None:
    spy = mocker.spy(MessageRepository, "find_between")

    for bad in ("abc", "1-2-3", "1-", "-1-2", "x-2"):
        response = client.get(f"/api/v1/messages/conversation/{bad}")
        assert response.status_code == status.HTTP_400_BAD_REQUEST, bad

    assert spy.call_count == 0


def test_conversation_with_unknown_user(client, customer) -> None:
    response = client.get(f"/api/v1/messages/conversation/{customer.id}-999999")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_list_conversations(client, customer, provider) -> None:
    """A user sees one entry per counterparty with the latest message and unread count."""
    _post_message(client, customer, provider, "hi")
    _post_message(client, provider, customer, "hello")

    customer_view = client.get(f"/api/v1/messages/conversations/{customer.id}")
    assert customer_view.status_code == status.HTTP_200_OK
    [entry] = customer_view.json()
    assert entry["id"] == _cid(customer, provider)
    assert entry["otherUserId"] == provider.id
    assert entry["otherUserName"] == provider.name
    assert entry["lastMessageText"] == "hello"
    assert entry["lastMessageSender"] == provider.name
    assert entry["unreadCount"] == 1

    [provider_entry] = client.get(f"/api/v1/messages/conversations/{provider.id}").json()
    assert provider_entry["otherUserId"] == customer.id
    assert provider_entry["lastMessageText"] == "hello"
    assert provider_entry["unreadCount"] == 1


def test_list_conversations_most_recent_first(client, customer, provider, third_user) -> None:
    _post_message(client, customer, provider, "first")
    _post_message(client, third_user, customer, "second")

    entries = client.get(f"/api/v1/messages/conversations/{customer.id}").json()

    assert [e["otherUserId"] for e in entries] == [third_user.id, provider.id]


def test_list_conversations_empty(client, customer) -> None:
    response = client.get(f"/api/v1/messages/conversations/{customer.id}")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == []


def test_list_conversations_unknown_user(client) -> None:
    response = client.get("/api/v1/messages/conversations/999999")
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_mark_read_and_unread_count(client, customer, provider) -> None:
    _post_message(client, customer, provider, "one")
    _post_message(client, customer, provider, "two")
    params = {"senderId": customer.id, "receiverId": provider.id}

    before = client.get("/api/v1/messages/unread-count", params=params)
    assert before.status_code == status.HTTP_200_OK
    assert before.json() == {"unreadCount": 2}

    response = client.post(
        "/api/v1/messages/mark-read",
        json={"senderId": customer.id, "receiverId": provider.id},
    )
    assert response.status_code == status.HTTP_204_NO_CONTENT
    assert client.get("/api/v1/messages/unread-count", params=params).json() == {"unreadCount": 0}

    [entry] = client.get(f"/api/v1/messages/conversations/{provider.id}").json()
    assert entry["unreadCount"] == 0

    history = client.get(f"/api/v1/messages/conversation/{_cid(customer, provider)}").json()
    assert all(m["isRead"] for m in history)


def test_mark_read_is_directional(client, customer, provider) -> None:
    _post_message(client, customer, provider, "to provider")
    _post_message(client, provider, customer, "to customer")

    client.post("/api/v1/messages/mark-read", json={"senderId": customer.id, "receiverId": provider.id})

    reverse = client.get(
        "/api/v1/messages/unread-count",
        params={"senderId": provider.id, "receiverId": customer.id},
    )
    assert reverse.json() == {"unreadCount": 1}


def test_mark_read_twice_is_harmless(client, customer, provider) -> None:
    _post_message(client, customer, provider, "hi")
    payload = {"senderId": customer.id, "receiverId": provider.id}

    assert client.post("/api/v1/messages/mark-read", json=payload).status_code == status.HTTP_204_NO_CONTENT
    assert client.post("/api/v1/messages/mark-read", json=payload).status_code == status.HTTP_204_NO_CONTENT


def test_mark_read_unknown_user(client, customer) -> None:
    response = client.post(
        "/api/v1/messages/mark-read",
        json={"senderId": 999_999, "receiverId": customer.id},
    )
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_unread_count_requires_both_parameters(client, customer) -> None:
    response = client.get("/api/v1/messages/unread-count", params={"senderId": customer.id})
    assert response.status_code == 422
