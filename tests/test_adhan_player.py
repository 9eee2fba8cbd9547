import asyncio

from adhan_player import AdhanPlayer


class _FakeHandle:
    def __init__(self, url: str, on_finished) -> None:
        self.url = url
        self.on_finished = on_finished
        self.paused = False
        self.unloaded = False

    async def pause(self) -> None:
        await asyncio.sleep(0)
        self.paused = True

    async def unload(self) -> None:
        await asyncio.sleep(0)
        self.unloaded = True

    def finish(self) -> None:
        self.on_finished(self)


class _FakeBackend:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.handles: list[_FakeHandle] = []
        self.volumes: list[float] = []

    async def load(self, url, volume, on_finished):
        await asyncio.sleep(0)
        if self.fail:
            raise RuntimeError("cannot decode audio")
        handle = _FakeHandle(url, on_finished)
        self.handles.append(handle)
        self.volumes.append(volume)
        return handle

    @property
    def live(self) -> list[_FakeHandle]:
        return [handle for handle in self.handles if not handle.unloaded]


def test_play_starts_at_full_volume():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    started = asyncio.run(player.play("https://cdn.example.test/azan.mp3"))

    assert started
    assert player.is_playing
    assert backend.volumes == [1.0]


def test_play_twice_leaves_single_live_handle():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    async def scenario():
        await asyncio.gather(player.play("https://a.test/1.mp3"), player.play("https://a.test/2.mp3"))

    asyncio.run(scenario())

    assert len(backend.handles) == 2
    assert len(backend.live) == 1
    first = backend.handles[0]
    assert first.paused and first.unloaded


def test_play_without_source_skips_backend():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    assert asyncio.run(player.play(None)) is False
    assert asyncio.run(player.play("  ")) is False
    assert backend.handles == []


def test_play_load_failure_returns_false():
    player = AdhanPlayer(_FakeBackend(fail=True))

    assert asyncio.run(player.play("https://a.test/broken.mp3")) is False
    assert not player.is_playing


def test_stop_when_idle_is_noop():
    player = AdhanPlayer(_FakeBackend())
    asyncio.run(player.stop())
    assert not player.is_playing


def test_stop_unloads_live_handle():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    async def scenario():
        await player.play("https://a.test/1.mp3")
        await player.stop()

    asyncio.run(scenario())

    assert backend.live == []
    assert not player.is_playing


def test_natural_completion_releases_handle():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    async def scenario():
        await player.play("https://a.test/1.mp3")
        backend.handles[0].finish()
        assert not player.is_playing
        await player.drain()

    asyncio.run(scenario())

    assert backend.handles[0].unloaded
    assert not backend.handles[0].paused


def test_stale_completion_is_ignored():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    async def scenario():
        await player.play("https://a.test/1.mp3")
        await player.play("https://a.test/2.mp3")
        backend.handles[0].finish()
        await player.drain()

    asyncio.run(scenario())

    assert player.is_playing
    assert backend.live == [backend.handles[1]]


def test_teardown_failure_does_not_block_next_play():
    backend = _FakeBackend()
    player = AdhanPlayer(backend)

    async def broken_pause() -> None:
        raise RuntimeError("device gone")

    async def scenario():
        await player.play("https://a.test/1.mp3")
        backend.handles[0].pause = broken_pause
        return await player.play("https://a.test/2.mp3")

    assert asyncio.run(scenario())
    assert len(backend.handles) == 2
