from unittest.mock import MagicMock

import pytest

from python.tgbroker.commands import CommandClient, quote
from python.tgbroker.roster import Chat, Contact, Roster


def _make_pool(answers):
    pool = MagicMock()
    pool.communicate.side_effect = lambda command, timeout=None: answers.get(command.split()[0])
    return pool


def test_roster_refresh_populates_profile_contacts_and_chats():
    pool = _make_pool(
        {
            "get_self": {"peer_id": 7, "first_name": "Ann", "last_name": "Lee", "phone": "1555"},
            "contact_list": [{"peer_id": 9, "print_name": "Bob"}, "junk"],
            "dialog_list": [
                {"peer_id": 9, "peer_type": "user"},
                {"peer_id": 100, "peer_type": "chat", "title": "Team", "members_num": "3", "admin": {"peer_id": 7}},
                {"peer_id": 200, "peer_type": "channel", "print_name": "News"},
            ],
        }
    )
    roster = Roster().refresh(CommandClient(pool))
    assert roster.current_user_id() == 7
    assert roster.profile.name == "Ann Lee"
    assert [contact.id for contact in roster.contacts] == [9]
    assert roster.find_contact(9).name == "Bob"
    assert [chat.id for chat in roster.chats] == [100, 200]
    team = roster.find_chat(100)
    assert team.members_num == 3
    assert team.admin_id == 7
    assert roster.find_chat(200).title == "News"
    assert roster.as_dict()["profile"]["id"] == 7

    roster.clear()
    assert roster.current_user_id() is None


def test_roster_refresh_propagates_errors():
    pool = MagicMock()
    pool.communicate.side_effect = RuntimeError("pool down")
    roster = Roster()
    with pytest.raises(RuntimeError):
        roster.refresh(CommandClient(pool))
    assert roster.profile is None


def test_contact_from_payload_falls_back_to_id():
    contact = Contact.from_payload({"id": "12", "username": "ghost"})
    assert contact.id == 12
    assert contact.name == "ghost"
    assert Chat.from_payload({"peer_id": None}).id is None


def test_send_message_quotes_text():
    pool = _make_pool({"msg": {"result": "SUCCESS"}})
    client = CommandClient(pool, timeout=2.0)
    assert client.send_message("user#9", 'say "hi"\nbye') == {"result": "SUCCESS"}
    pool.communicate.assert_called_once_with('msg user#9 "say \\"hi\\"\\nbye"', timeout=2.0)


def test_group_and_contact_commands():
    pool = _make_pool({})
    client = CommandClient(pool)
    client.chat_add_user("chat#100", "user#9")
    client.create_group_chat("Team A", "user#9", "user#10")
    client.add_contact("+1555", "Bob")
    client.mark_read("user#9")
    client.dialog_list(limit=20)
    commands = [call.args[0] for call in pool.communicate.call_args_list]
    assert commands == [
        "chat_add_user chat#100 user#9 100",
        'create_group_chat "Team A" user#9 user#10',
        'add_contact +1555 "Bob" ""',
        "mark_read user#9",
        "dialog_list 20",
    ]


def test_command_argument_validation():
    client = CommandClient(_make_pool({}))
    with pytest.raises(ValueError):
        client.send_message("two words", "hi")
    with pytest.raises(ValueError):
        client.create_group_chat("Empty")
    assert client.contact_list() == []
    assert client.get_self() == {}


def test_quote_escapes_backslashes():
    assert quote("a\\b") == '"a\\\\b"'


def test_partial_refresh_failure_leaves_roster_empty():
    def communicate(command, timeout=None):
        if command == "get_self":
            return {"peer_id": 7, "first_name": "Ann"}
        raise RuntimeError("contact_list failed")

    pool = MagicMock()
    pool.communicate.side_effect = communicate
    roster = Roster()
    with pytest.raises(RuntimeError):
        roster.refresh(CommandClient(pool))
    assert roster.profile is None
    assert roster.current_user_id() is None
    assert roster.contacts == []
    assert roster.chats == []
