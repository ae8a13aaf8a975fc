from __future__ import annotations

import asyncio
import json

import pytest

from sharechat.config import DEFAULTS
from sharechat.errors import ContentTooLargeError, EmptyContentError, RateLimitExceeded
from sharechat.ratelimit import RateLimiter
from sharechat.service import ShareService
from sharechat.types import Format

JSON_CHAT = json.dumps([{"from": "human", "value": "hi"}, {"from": "gpt", "value": "<b>hello</b>"}])


@pytest.fixture()
def service(store, clock) -> ShareService:
    return ShareService(store, limiter=RateLimiter(store, clock=clock))


def test_submit_stores_record(service, store):
    record = asyncio.run(service.submit(JSON_CHAT, "1.2.3.4"))
    assert service.is_valid_id(record.id)
    assert record.format is Format.JSON
    assert record.raw == JSON_CHAT
    assert record.metadata.size == len(JSON_CHAT)
    assert record.metadata.client_identity == "1.2.3.4"

    stored = json.loads(asyncio.run(store.get(record.id)))
    assert stored["id"] == record.id
    content = stored["content"]
    assert content["format"] == "json"
    assert content["raw"] == JSON_CHAT
    assert content["parsed"]["messageCount"] == 2
    assert content["parsed"]["messages"][1] == {"role": "assistant", "content": "<b>hello</b>"}
    assert content["metadata"]["clientIdentity"] == "1.2.3.4"
    assert content["metadata"]["created"].endswith("Z")


def test_submit_normalizes_before_storing(service):
    body = "\r\n\r\nUser: hi\r\n\r\n\r\n\r\nAssistant: hello\r\n"
    record = asyncio.run(service.submit(body))
    assert record.raw == "User: hi\n\nAssistant: hello"
    assert record.format is Format.PARSED
    assert record.metadata.client_identity == "unknown"


def test_retrieve_roundtrip(service):
    record = asyncio.run(service.submit("User: hi\nAssistant: hello"))
    loaded = asyncio.run(service.retrieve(record.id))
    assert loaded.to_dict() == record.to_dict()


def test_retrieve_missing(service):
    assert asyncio.run(service.retrieve("abcdefgh")) is None


def test_record_without_format_reads_as_raw(service, store):
    legacy = {"id": "abcdefgh", "content": {"raw": "<p>old</p>", "metadata": {"ip": "5.6.7.8", "size": 10}}}
    asyncio.run(store.put("abcdefgh", json.dumps(legacy)))
    record = asyncio.run(service.retrieve("abcdefgh"))
    assert record.format is Format.RAW
    assert record.raw == "<p>old</p>"
    assert record.metadata.client_identity == "5.6.7.8"


@pytest.mark.parametrize("body", ["", "   \n\n", "------------------------------1234567890123456--\n"])
def test_empty_submission_rejected(service, body):
    with pytest.raises(EmptyContentError):
        asyncio.run(service.submit(body))


def test_size_limit_applies_after_normalization(store, clock):
    service = ShareService(store, limiter=RateLimiter(store, clock=clock), max_content_chars=5)
    # Padding is trimmed away first, so this fits.
    assert asyncio.run(service.submit("\n\n  abcde  \n\n")).raw == "abcde"
    with pytest.raises(ContentTooLargeError) as exc:
        asyncio.run(service.submit("abcdef"))
    assert exc.value.size == 6
    assert exc.value.limit == 5


def test_rate_limit_is_checked_first(store, clock):
    service = ShareService(store, limiter=RateLimiter(store, limit=1, clock=clock))
    with pytest.raises(EmptyContentError):
        asyncio.run(service.submit("", "a"))
    # The rejected empty submission still used up the single slot.
    with pytest.raises(RateLimitExceeded):
        asyncio.run(service.submit("User: hi", "a"))
    asyncio.run(service.submit("User: hi", "b"))


def test_rate_limited_submission_writes_nothing(store, clock):
    service = ShareService(store, limiter=RateLimiter(store, limit=1, clock=clock))
    asyncio.run(service.submit("User: hi", "a"))
    before = len(store)
    with pytest.raises(RateLimitExceeded):
        asyncio.run(service.submit("User: again", "a"))
    assert len(store) == before


def test_is_valid_id(service):
    assert service.is_valid_id("abcDEF23")
    assert not service.is_valid_id("abcDEF2")
    assert not service.is_valid_id("abcDEF234")
    assert not service.is_valid_id("abc-EF23")
    assert not service.is_valid_id("")


def test_from_config(store):
    cfg = json.loads(json.dumps(DEFAULTS))
    cfg["rate_limit"]["limit"] = 3
    cfg["ids"]["length"] = 6
    cfg["server"]["max_content_chars"] = 100
    cfg["parser"]["multi_turn"] = True
    service = ShareService.from_config(cfg, store)
    assert service.limiter.limit == 3
    assert service.allocator.length == 6
    assert service.max_content_chars == 100
    assert service.multi_turn is True
    assert service.is_valid_id("abcdef")
    assert not service.is_valid_id("abcdefgh")


def test_rejected_content_is_never_parsed(store, clock, monkeypatch):
    def must_not_parse(*args, **kwargs):
        raise AssertionError("parser invoked")

    monkeypatch.setattr("sharechat.service.parse_transcript", must_not_parse)
    service = ShareService(store, limiter=RateLimiter(store, clock=clock), max_content_chars=3)
    with pytest.raises(EmptyContentError):
        asyncio.run(service.submit(""))
    with pytest.raises(ContentTooLargeError):
        asyncio.run(service.submit("abcd"))
