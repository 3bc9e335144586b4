import asyncio

from cleanup import sweep_expired


def run_sweep_briefly(store) -> None:
    async def run() -> None:
        task = asyncio.create_task(sweep_expired(store, interval=0))
        await asyncio.sleep(0.05)
        task.cancel()
        await task

    asyncio.run(run())


def test_sweep_purges_expired_keys(store, clock):
    store.set("old", "v", ex=1)
    store.set("fresh", "v", ex=100)
    clock.advance(2)

    run_sweep_briefly(store)

    assert store.purge_expired() == 0
    assert store.get("fresh") == "v"


def test_sweep_survives_errors():
    class FlakyStore:
        calls = 0

        def purge_expired(self) -> int:
            self.calls += 1
            if self.calls == 1:
                raise RuntimeError("boom")
            return 0

    flaky = FlakyStore()

    run_sweep_briefly(flaky)

    assert flaky.calls > 1
