import asyncio
import random

import pytest

from quizlive.client.channel import ChannelManager
from quizlive.client.host import NO_PLAYERS_MESSAGE, HostConsole, generate_session_code
from quizlive.shared.events import EventDispatcher
from quizlive.shared.models import ConnectionState, MatchState

from conftest import FakeTransport, wait_for


@pytest.fixture()
def host_rig(fast_settings):
    transport = FakeTransport()
    dispatcher = EventDispatcher()
    channel = ChannelManager(dispatcher, cfg=fast_settings, transport=transport, client_id="host")
    host = HostConsole(channel, dispatcher, cfg=fast_settings, session_code="QUIZAB12")
    host.attach()
    return host, channel, transport


def test_session_code_shape():
    code = generate_session_code(random.Random(7))
    assert code.startswith("QUIZ")
    assert len(code) == 8
    assert code[4:].isalnum() and code[4:].upper() == code[4:]


def test_join_url_points_at_the_play_page(host_rig):
    host, _, _ = host_rig
    assert host.join_url == "http://quiz.local:4200/play/QUIZAB12"


def test_session_is_created_once_connected(host_rig):
    host, channel, transport = host_rig
    host.quiz_name = "capitals"

    async def scenario():
        await channel.connect()
        await wait_for(lambda: len(transport.sent("create_session")) == 1)
        await transport.push("session_created", {"session_id": "QUIZAB12"})
        transport.drop()
        await wait_for(lambda: transport.connect_calls == 2 and channel.state is ConnectionState.CONNECTED)
        await asyncio.sleep(0.01)
        await channel.close()

    asyncio.run(scenario())
    assert transport.sent("create_session") == [{"session_id": "QUIZAB12", "quiz_name": "capitals"}]
    assert host.created is True


def test_start_game_needs_a_player(host_rig):
    host, channel, transport = host_rig

    async def scenario():
        await channel.connect()
        await wait_for(lambda: channel.state is ConnectionState.CONNECTED)
        refused = await host.start_game()
        notice = host.notice
        await transport.push("player_joined", {"player_name": "Mia"})
        await transport.push("player_joined", {"player_name": "Mia"})
        await transport.push("player_joined", {"player_name": "Leo"})
        started = await host.start_game()
        await channel.close()
        return refused, notice, started

    refused, notice, started = asyncio.run(scenario())
    assert refused is False
    assert notice == NO_PLAYERS_MESSAGE
    assert started is True
    assert host.players == ["Mia", "Leo"]
    assert transport.sent("start_game") == [{"session_id": "QUIZAB12"}]


def test_host_follows_the_match(host_rig, question_payload):
    host, channel, transport = host_rig

    async def scenario():
        await channel.connect()
        await wait_for(lambda: channel.state is ConnectionState.CONNECTED)
        await transport.push("game_started", {})
        await transport.push("new_question", question_payload)
        await transport.push("timer_update", {"remaining": 4})
        await transport.push("question_results", {
            "correct_answer": 2,
            "leaderboard": [{"name": "Leo", "score": 10}, {"name": "Mia", "score": 60}],
        })
        mid = (host.remaining_seconds, host.correct_index, [e.participant_name for e in host.leaderboard])
        await transport.push("game_over", {"leaderboard": [{"name": "Mia", "score": 160}]})
        await channel.close()
        return mid

    mid = asyncio.run(scenario())
    assert mid == (4, 2, ["Mia", "Leo"])
    assert host.match_state is MatchState.FINISHED
    assert host.leaderboard[0].score == 160


def test_player_and_host_screens_share_one_channel(host_rig, question_payload):
    host, channel, transport = host_rig
    seen = []
    token = channel.dispatcher.subscribe("new_question", seen.append)

    async def scenario():
        await channel.connect()
        await wait_for(lambda: channel.state is ConnectionState.CONNECTED)
        await transport.push("new_question", question_payload)
        channel.dispatcher.unsubscribe(token)
        await transport.push("new_question", {**question_payload, "question_number": 2})
        await channel.close()

    asyncio.run(scenario())
    assert len(seen) == 1
    assert host.current_question.ordinal == 2
