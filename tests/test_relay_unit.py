import asyncio
import json

import pytest

from conftest import FakeGenerator
from medassist.errors import BackendCapacityError, StreamCancelled
from medassist.streaming.cancellation import CancellationToken
from medassist.streaming.parser import IncrementalParser
from medassist.streaming.relay import METADATA_SENTINEL, StreamRelay, build_metadata, encode_metadata


async def _drain(relay):
    out = []
    async for segment in relay:
        out.append(segment)
    return out


def test_relay_forwards_chunks_in_order_then_metadata():
    chunks = ["## Flu\n", "**Fever**\n", "Rest well.\n"]
    relay = StreamRelay(FakeGenerator(chunks).stream("prompt"), category="general")

    out = asyncio.run(_drain(relay))

    assert out[:-1] == chunks
    assert out[-1].startswith(METADATA_SENTINEL)
    metadata = json.loads(out[-1][len(METADATA_SENTINEL):])
    assert metadata["done"] is True
    assert metadata["category"] == "general"
    assert metadata["suggestions"] == []
    assert metadata["timestamp"]
    assert relay.closed


def test_relay_computes_suggestions_from_full_text():
    chunks = ["Answer.\n\n**Follow-up", " Questions:**\n- Is the flu contagious?\n", "- How do I treat a fever?\n"]
    out = asyncio.run(_drain(StreamRelay(FakeGenerator(chunks).stream("prompt"))))

    metadata = json.loads(out[-1][len(METADATA_SENTINEL):])
    assert metadata["suggestions"] == ["Is the flu contagious?", "How do I treat a fever?"]
    assert metadata["category"] == "general"


def test_relay_with_empty_upstream_emits_only_metadata():
    out = asyncio.run(_drain(StreamRelay(FakeGenerator([]).stream("prompt"))))
    assert len(out) == 1
    assert out[0].startswith(METADATA_SENTINEL)


def test_relay_can_only_be_iterated_once():
    relay = StreamRelay(FakeGenerator(["a"]).stream("prompt"))
    asyncio.run(_drain(relay))
    with pytest.raises(RuntimeError):
        relay.__aiter__()


def test_prime_surfaces_first_chunk_errors():
    relay = StreamRelay(FakeGenerator(["never"], error=BackendCapacityError("quota")).stream("prompt"))
    with pytest.raises(BackendCapacityError):
        asyncio.run(relay.prime())


def test_primed_relay_still_forwards_first_chunk():
    async def run():
        relay = await StreamRelay(FakeGenerator(["first", "second"]).stream("prompt")).prime()
        return await _drain(relay)

    out = asyncio.run(run())
    assert out[:2] == ["first", "second"]


def test_midstream_error_reaches_consumer_after_partial_text():
    relay = StreamRelay(FakeGenerator(["one", "two", "three"], error=RuntimeError("backend died"), fail_after=2).stream("p"))
    received = []

    async def run():
        async for segment in relay:
            received.append(segment)

    with pytest.raises(RuntimeError, match="backend died"):
        asyncio.run(run())
    assert received == ["one", "two"]
    assert relay.closed


def test_cancellation_stops_relay():
    token = CancellationToken()
    relay = StreamRelay(FakeGenerator(["one", "two", "three"]).stream("p"), cancel_token=token)
    received = []

    async def run():
        async for segment in relay:
            received.append(segment)
            token.cancel("user closed chat")

    with pytest.raises(StreamCancelled):
        asyncio.run(run())
    assert received == ["one"]


def test_cancellation_interrupts_a_stalled_upstream():
    async def stalled():
        yield "start"
        await asyncio.sleep(3600)
        yield "never"

    async def run():
        token = CancellationToken()
        relay = StreamRelay(stalled(), cancel_token=token)
        received = []

        async def consume():
            async for segment in relay:
                received.append(segment)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        token.cancel()
        with pytest.raises(StreamCancelled):
            await asyncio.wait_for(task, timeout=1)
        return received

    assert asyncio.run(run()) == ["start"]


def test_encode_metadata_is_compact_json_after_sentinel():
    metadata = build_metadata("no questions", None)
    encoded = encode_metadata(metadata)
    assert encoded.startswith("\n___METADATA___\n{")
    decoded = json.loads(encoded[len(METADATA_SENTINEL):])
    assert decoded == metadata.model_dump()
    assert decoded["category"] == "general"


def test_relayed_scenario_parses_back_to_content_and_suggestions():
    chunks = ["## Flu\n", "**Fever**\n", METADATA_SENTINEL, '{"suggestions":["How long does it last?"],"done":true}']

    async def run():
        parser = IncrementalParser()
        async for segment in StreamRelay(FakeGenerator(chunks).stream("p")):
            parser.feed(segment)
        return parser.finish()

    parsed = asyncio.run(run())
    assert parsed.text == "## Flu\n**Fever**\n"
    assert parsed.suggestions == ["How long does it last?"]
