"""Tests for invocation outcome statistics."""

import threading


class TestStatsCounter:

    def test_starts_at_zero(self):
        from llm_router.stats import StatsCounter

        table = StatsCounter().snapshot()

        assert set(table) == {"SUCCESS", "FAILURE", "SWITCH", "RETRY", "CROP"}
        assert all(category.count == 0 for category in table.values())

    def test_record_methods_increment(self):
        from llm_router.stats import StatsCounter

        stats = StatsCounter()
        stats.record_success()
        stats.record_success()
        stats.record_failure()
        stats.record_switch()
        stats.record_retry()
        stats.record_crop()

        table = stats.snapshot()
        assert table["SUCCESS"].count == 2
        assert table["FAILURE"].count == 1
        assert table["SWITCH"].count == 1
        assert table["RETRY"].count == 1
        assert table["CROP"].count == 1

    def test_symbols(self):
        from llm_router.stats import StatsCounter

        table = StatsCounter().snapshot()

        assert [table[name].symbol for name in ("SUCCESS", "FAILURE", "SWITCH", "RETRY", "CROP")] == [
            ">", "!", "+", "?", "-",
        ]

    def test_snapshot_includes_total(self):
        from llm_router.stats import StatsCounter

        stats = StatsCounter()
        stats.record_success()
        stats.record_failure()
        stats.record_retry()

        table = stats.snapshot(include_total=True)
        assert table["TOTAL"].count == 2
        assert table["TOTAL"].symbol == "="

    def test_snapshot_is_a_copy(self):
        from llm_router.stats import StatsCounter

        stats = StatsCounter()
        table = stats.snapshot()
        table["SUCCESS"].count = 99

        assert stats.snapshot()["SUCCESS"].count == 0

    def test_instances_are_independent(self):
        from llm_router.stats import StatsCounter

        first, second = StatsCounter(), StatsCounter()
        first.record_success()

        assert second.snapshot()["SUCCESS"].count == 0

    def test_concurrent_increments(self):
        from llm_router.stats import StatsCounter

        stats = StatsCounter()

        def work():
            for _ in range(1000):
                stats.record_retry()

        threads = [threading.Thread(target=work) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert stats.snapshot()["RETRY"].count == 8000
