import asyncio
from datetime import datetime, timezone

import responses

from audio_source import AudioSourceResolver, AzanAudioClient, AzanAudioInfo

BACKEND_URL = "https://backend.example.test"


def test_fetch_azan_audio_parses_metadata():
    client = AzanAudioClient(BACKEND_URL)

    with responses.RequestsMock() as mock:
        mock.add(
            responses.GET,
            client.url,
            json={
                "url": "https://cdn.example.test/azan.mp3",
                "filename": "azan.mp3",
                "uploadedAt": "2025-11-09T10:15:00.000Z",
            },
            status=200,
        )
        info = client.fetch_azan_audio()

    assert info is not None
    assert info.has_custom_audio
    assert info.filename == "azan.mp3"
    assert info.uploaded_at == datetime(2025, 11, 9, 10, 15, tzinfo=timezone.utc)


def test_empty_url_means_no_custom_audio():
    client = AzanAudioClient(BACKEND_URL)

    with responses.RequestsMock() as mock:
        mock.add(responses.GET, client.url, json={"url": "", "filename": None, "uploadedAt": None}, status=200)
        info = client.fetch_azan_audio()

    assert info is not None
    assert not info.has_custom_audio
    assert not AzanAudioInfo(url="   ").has_custom_audio


def test_resolver_caches_until_invalidated():
    client = AzanAudioClient(BACKEND_URL)
    resolver = AudioSourceResolver(client)

    async def scenario():
        first = await resolver.resolve()
        second = await resolver.resolve()
        resolver.invalidate()
        third = await resolver.resolve()
        return first, second, third

    with responses.RequestsMock() as mock:
        mock.add(responses.GET, client.url, json={"url": "https://cdn.example.test/old.mp3"}, status=200)
        mock.add(responses.GET, client.url, json={"url": "https://cdn.example.test/new.mp3"}, status=200)
        first, second, third = asyncio.run(scenario())
        call_count = len(mock.calls)

    assert call_count == 2
    assert first.url == second.url == "https://cdn.example.test/old.mp3"
    assert third.url == "https://cdn.example.test/new.mp3"


def test_resolver_failure_yields_empty_info_and_retries():
    client = AzanAudioClient(BACKEND_URL)
    resolver = AudioSourceResolver(client)

    with responses.RequestsMock() as mock:
        mock.add(responses.GET, client.url, json={"error": "down"}, status=503)
        mock.add(responses.GET, client.url, json={"url": "https://cdn.example.test/azan.mp3"}, status=200)

        failed = asyncio.run(resolver.resolve())
        assert resolver.cached is None
        assert asyncio.run(resolver.lookup()).url == "https://cdn.example.test/azan.mp3"

    assert failed.url is None
    assert not failed.has_custom_audio


def test_resolver_caches_missing_audio_response():
    client = AzanAudioClient(BACKEND_URL)
    resolver = AudioSourceResolver(client)

    with responses.RequestsMock() as mock:
        mock.add(responses.GET, client.url, body="null", status=200, content_type="application/json")
        info = asyncio.run(resolver.resolve())
        again = asyncio.run(resolver.resolve())
        call_count = len(mock.calls)

    assert call_count == 1
    assert info == again == AzanAudioInfo.empty()
