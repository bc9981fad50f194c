"""Tests for the asset preload queue."""

import asyncio

import pytest

from core.domain.assets import AssetPriority, AssetType, ConnectionSpeed, PreloadProgress
from core.services.asset_preloader import AssetPreloader, PreloadProgressWatcher, preload_critical_assets
from core.services.connection import ConnectionMonitor, classify_throughput


class FakeLoader:
    """Records dispatch order and concurrency; loads take `delay` seconds."""

    def __init__(self, delay=0.0, fail=()):
        self.delay = delay
        self.fail = set(fail)
        self.calls = []
        self.active = 0
        self.max_active = 0

    async def load(self, url, asset_type):
        self.calls.append((url, asset_type))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            if url in self.fail:
                raise RuntimeError(f"Failed to load asset: {url}")
            return f"loaded:{url}"
        finally:
            self.active -= 1


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        self.now += 0.5
        return self.now


class TestConnectionMonitor:
    @pytest.mark.parametrize(
        "effective_type, expected",
        [("4g", 4), ("3g", 2), ("2g", 1), ("slow-2g", 1), (None, 3), ("", 3)],
    )
    def test_max_concurrent(self, effective_type, expected):
        assert ConnectionMonitor(effective_type).max_concurrent == expected

    def test_override(self):
        assert ConnectionMonitor("2g", max_concurrency_override=6).max_concurrent == 6

    def test_change_notifies_listeners(self):
        monitor = ConnectionMonitor("4g")
        seen = []
        unsubscribe = monitor.on_change(seen.append)
        monitor.set_effective_type("3g")
        monitor.set_effective_type("3g")
        unsubscribe()
        monitor.set_effective_type("2g")
        assert seen == ["3g"]
        assert monitor.speed is ConnectionSpeed.SLOW

    @pytest.mark.parametrize(
        "kbps, expected",
        [(10, "slow-2g"), (60, "2g"), (500, "3g"), (5000, "4g")],
    )
    def test_classify_throughput(self, kbps, expected):
        assert classify_throughput(kbps) == expected


class TestDedup:
    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_load(self):
        loader = FakeLoader(delay=0.01)
        preloader = AssetPreloader(loader, ConnectionMonitor("4g"))

        first = preloader.preload_texture("/textures/a.png")
        second = preloader.preload_texture("/textures/a.png")
        results = await asyncio.gather(first, second)

        assert results == ["loaded:/textures/a.png", "loaded:/textures/a.png"]
        assert len(loader.calls) == 1

    @pytest.mark.asyncio
    async def test_loaded_asset_returns_cached_value(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader)
        await preloader.preload_model("/models/a.glb")
        assert await preloader.preload_model("/models/a.glb") == "loaded:/models/a.glb"
        assert len(loader.calls) == 1
        assert preloader.is_loaded("/models/a.glb")

    @pytest.mark.asyncio
    async def test_clear_cache_allows_reload(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader)
        await preloader.preload("/a.bin")
        preloader.clear_cache()
        await preloader.preload("/a.bin")
        assert len(loader.calls) == 2

    @pytest.mark.asyncio
    async def test_cancelling_one_caller_keeps_shared_load(self):
        loader = FakeLoader(delay=0.02)
        preloader = AssetPreloader(loader)

        first = preloader.preload_model("/models/a.glb")
        second = preloader.preload_model("/models/a.glb")
        first.cancel()

        assert await second == "loaded:/models/a.glb"
        assert len(loader.calls) == 1


class TestOrdering:
    @pytest.mark.asyncio
    async def test_priority_order_with_single_slot(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader, ConnectionMonitor("2g"))

        futures = [
            preloader.preload("/low", priority=AssetPriority.LOW),
            preloader.preload("/critical", priority=AssetPriority.CRITICAL),
            preloader.preload("/medium", priority=AssetPriority.MEDIUM),
        ]
        await asyncio.gather(*futures)

        assert [url for url, _ in loader.calls] == ["/critical", "/medium", "/low"]

    @pytest.mark.asyncio
    async def test_ties_keep_insertion_order(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader, ConnectionMonitor("slow-2g"))
        futures = [preloader.preload(f"/{n}", priority=AssetPriority.HIGH) for n in range(4)]
        await asyncio.gather(*futures)
        assert [url for url, _ in loader.calls] == ["/0", "/1", "/2", "/3"]


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_cap_is_respected(self):
        loader = FakeLoader(delay=0.01)
        preloader = AssetPreloader(loader, ConnectionMonitor("3g"))
        observed = []
        preloader.on_progress(lambda p: observed.append(len(preloader.loading_urls)))

        await asyncio.gather(*(preloader.preload(f"/asset-{n}") for n in range(5)))

        assert loader.max_active == 2
        assert all(count <= 2 for count in observed)

    @pytest.mark.asyncio
    async def test_connection_change_applies_to_next_dispatch(self):
        loader = FakeLoader(delay=0.01)
        monitor = ConnectionMonitor("slow-2g")
        preloader = AssetPreloader(loader, monitor)

        futures = [preloader.preload(f"/asset-{n}") for n in range(6)]
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        monitor.set_effective_type("4g")
        await asyncio.gather(*futures)

        assert loader.max_active == 4
        assert preloader.connection_speed is ConnectionSpeed.FAST

    def test_unknown_connection_reports_medium(self):
        preloader = AssetPreloader(FakeLoader())
        assert preloader.connection_speed is ConnectionSpeed.MEDIUM
        assert preloader.max_concurrent == 3


class TestFailures:
    @pytest.mark.asyncio
    async def test_failure_rejects_only_that_item(self):
        loader = FakeLoader(fail={"/bad"})
        preloader = AssetPreloader(loader)

        bad = preloader.preload("/bad")
        good = preloader.preload("/good")
        results = await asyncio.gather(bad, good, return_exceptions=True)

        assert isinstance(results[0], RuntimeError)
        assert results[1] == "loaded:/good"
        assert isinstance(preloader.error_for("/bad"), RuntimeError)
        assert not preloader.is_loaded("/bad")

    @pytest.mark.asyncio
    async def test_failed_item_is_not_retried_automatically(self):
        loader = FakeLoader(fail={"/bad"})
        preloader = AssetPreloader(loader)
        with pytest.raises(RuntimeError):
            await preloader.preload("/bad")
        await preloader.wait_idle()
        assert len(loader.calls) == 1

        loader.fail.clear()
        assert await preloader.preload("/bad") == "loaded:/bad"
        assert preloader.error_for("/bad") is None


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_and_running_mean(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader, ConnectionMonitor("slow-2g"), clock=FakeClock())
        updates = []
        unsubscribe = preloader.on_progress(updates.append)

        await asyncio.gather(*(preloader.preload(f"/{n}") for n in range(3)))
        unsubscribe()

        assert [(p.total, p.loaded) for p in updates] == [(3, 1), (3, 2), (3, 3)]
        assert updates[-1].percentage == 100.0
        assert updates[0].estimated_time_remaining == pytest.approx(2 * 0.5)
        assert updates[-1].estimated_time_remaining == 0
        assert preloader.average_load_time == pytest.approx(0.5)

    def test_empty_progress(self):
        assert AssetPreloader(FakeLoader()).progress() == PreloadProgress()

    @pytest.mark.asyncio
    async def test_watcher_tracks_latest_progress(self):
        preloader = AssetPreloader(FakeLoader())
        with PreloadProgressWatcher(preloader) as watcher:
            await watcher.preload_model("/models/a.glb")
            await watcher.preload_texture("/textures/a.png")
            assert watcher.progress.loaded == 2
            assert watcher.connection_speed is ConnectionSpeed.MEDIUM
        await preloader.preload("/after-close")
        assert watcher.progress.loaded == 2


class TestLinks:
    @pytest.mark.asyncio
    async def test_preload_links_for_queued_critical_and_high(self):
        preloader = AssetPreloader(FakeLoader())
        futures = [
            preloader.preload_texture("/textures/a.png", AssetPriority.HIGH),
            preloader.preload_model("/models/a.glb", AssetPriority.CRITICAL),
            preloader.preload("/low.bin", priority=AssetPriority.LOW),
        ]

        links = preloader.get_preload_links()
        await asyncio.gather(*futures)

        assert [(link.as_, link.href) for link in links] == [("fetch", "/models/a.glb"), ("image", "/textures/a.png")]
        assert links[0].to_html() == '<link rel="preload" as="fetch" href="/models/a.glb" crossorigin="anonymous">'
        assert preloader.get_preload_links() == []

    def test_warmup_dedupes_origins_and_skips_invalid(self):
        preloader = AssetPreloader(FakeLoader())
        links = preloader.warmup_connection(
            [
                "https://cdn.amanakshar.test/a.glb",
                "https://cdn.amanakshar.test/b.png",
                "/relative/path",
                "http://localhost:3000/x",
                "not a url",
            ]
        )
        assert [link.href for link in links] == ["https://cdn.amanakshar.test", "http://localhost:3000"]
        assert all(link.rel == "preconnect" for link in links)

    @pytest.mark.asyncio
    async def test_preload_critical_assets(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader)
        futures = preload_critical_assets(
            preloader,
            [("/models/a.glb", AssetType.MODEL), ("/textures/a.png", AssetType.TEXTURE), ("/x", AssetType.GENERIC)],
        )
        await asyncio.gather(*futures)
        assert sorted(url for url, _ in loader.calls) == ["/models/a.glb", "/textures/a.png"]

    @pytest.mark.asyncio
    async def test_draco_is_critical(self):
        loader = FakeLoader()
        preloader = AssetPreloader(loader)
        await preloader.preload_draco()
        assert loader.calls == [("/draco/", AssetType.DRACO)]
