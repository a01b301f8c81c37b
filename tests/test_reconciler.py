"""
Tests for the reconciler: transition decisions, idempotence, overrides,
unlinked components and behavior while a backend is down.
"""

import pytest

from spcontroller.models import ThresholdRule


def _link(newrelic, statuspage, name, status="operational", credential="key-a"):
    newrelic.add_policies(credential, name)
    return statuspage.add(name, status)


class Recorder:
    def __init__(self):
        self.calls = []

    def notify(self, component, status, violation):
        self.calls.append((component.name, status, violation))


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_violation_escalates_component(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "API")
        newrelic.add_violations("key-a", ("api", 1250))

        report = await reconciler.run_cycle()

        assert statuspage.updates == [("API", "partial_outage")]
        assert report.updated == ["api"]

    @pytest.mark.asyncio
    async def test_no_violation_reverts_to_operational(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "API", status="major_outage")

        await reconciler.run_cycle()

        assert statuspage.updates == [("API", "operational")]

    @pytest.mark.asyncio
    async def test_status_comparison_is_case_insensitive(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "API", status="Operational")

        await reconciler.run_cycle()

        assert statuspage.updates == []

    @pytest.mark.asyncio
    async def test_second_cycle_issues_no_updates(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "api")
        _link(newrelic, statuspage, "db", status="partial_outage")
        newrelic.add_violations("key-a", ("api", 1801))

        await reconciler.run_cycle()
        assert len(statuspage.updates) == 2

        report = await reconciler.run_cycle()
        assert len(statuspage.updates) == 2
        assert report.updated == []

    @pytest.mark.asyncio
    async def test_unlinked_component_is_never_updated(self, reconciler, newrelic, statuspage):
        newrelic.add_policies("key-a", "api")
        statuspage.add("Marketing site", status="major_outage")

        report = await reconciler.run_cycle()

        assert statuspage.updates == []
        assert report.unmanaged == 1

    @pytest.mark.asyncio
    async def test_grouped_component_matches_flattened_name(self, reconciler, newrelic, statuspage):
        newrelic.add_policies("key-a", "EU-API")
        statuspage.add("API", group_name="EU")
        newrelic.add_violations("key-a", ("eu-api", 700))

        await reconciler.run_cycle()

        assert statuspage.updates == [("API", "degraded_performance")]

    @pytest.mark.asyncio
    async def test_longest_violation_across_accounts_wins(self, settings, reconciler, newrelic, statuspage):
        settings.nr_api_keys = ["key-a", "key-b"]
        _link(newrelic, statuspage, "db")
        newrelic.add_violations("key-a", ("db", 300))
        newrelic.add_violations("key-b", ("db", 1900))

        await reconciler.run_cycle()

        assert reconciler.oldest_violation_per_policy["db"].duration == 1900
        assert statuspage.updates == [("db", "major_outage")]

    @pytest.mark.asyncio
    async def test_uses_configured_thresholds(self, settings, reconciler, newrelic, statuspage):
        reconciler.thresholds = [ThresholdRule(10, "degraded_performance"), ThresholdRule(60, "major_outage")]
        _link(newrelic, statuspage, "api")
        newrelic.add_violations("key-a", ("api", 61))

        await reconciler.run_cycle()

        assert statuspage.updates == [("api", "major_outage")]

    @pytest.mark.asyncio
    async def test_observers_see_transition_before_update(self, reconciler, newrelic, statuspage):
        order = []

        class Observer:
            def notify(self, component, status, violation):
                order.append(("observer", len(statuspage.updates)))

        reconciler.add_observer(Observer())
        _link(newrelic, statuspage, "api")
        newrelic.add_violations("key-a", ("api", 700))

        await reconciler.run_cycle()

        assert order == [("observer", 0)]
        assert len(statuspage.updates) == 1

    @pytest.mark.asyncio
    async def test_observer_gets_none_when_reverting(self, reconciler, newrelic, statuspage):
        recorder = Recorder()
        reconciler.add_observer(recorder)
        _link(newrelic, statuspage, "api", status="partial_outage")

        await reconciler.run_cycle()

        assert recorder.calls == [("api", "operational", None)]

    @pytest.mark.asyncio
    async def test_failed_update_is_retried_next_cycle(self, reconciler, newrelic, statuspage):
        component = _link(newrelic, statuspage, "api")
        newrelic.add_violations("key-a", ("api", 700))
        statuspage.rejected.add(component.id)

        report = await reconciler.run_cycle()
        assert report.failed == ["api"]

        statuspage.rejected.clear()
        report = await reconciler.run_cycle()
        assert report.updated == ["api"]
        assert statuspage.status_of("api") == "degraded_performance"


class TestBackendOutages:
    @pytest.mark.asyncio
    async def test_incomplete_alert_data_skips_cycle(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "api", status="major_outage")
        newrelic.add_violations("key-a", ("api", 1900))
        await reconciler.run_cycle()

        newrelic.fail_at[("violations", "key-a")] = 1
        report = await reconciler.run_cycle()

        assert report.skipped
        assert statuspage.updates == []
        assert "api" in reconciler.policies
        assert reconciler.oldest_violation_per_policy["api"].duration == 1900

    @pytest.mark.asyncio
    async def test_statuspage_outage_keeps_previous_caches(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "api")
        await reconciler.run_cycle()
        statuspage.down = True

        report = await reconciler.run_cycle()

        assert report.skipped
        assert set(reconciler.components) == {"api"}

    @pytest.mark.asyncio
    async def test_recovers_once_backend_returns(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "api")
        newrelic.add_violations("key-a", ("api", 700))
        statuspage.down = True
        await reconciler.run_cycle()

        statuspage.down = False
        await reconciler.run_cycle()

        assert statuspage.updates == [("api", "degraded_performance")]


class TestOverrides:
    @pytest.mark.asyncio
    async def test_override_blocks_automatic_update(self, reconciler, newrelic, statuspage, clock):
        _link(newrelic, statuspage, "api")
        newrelic.add_violations("key-a", ("api", 1900))

        await reconciler.register_override("api", 5)
        report = await reconciler.run_cycle()

        assert statuspage.updates == []
        assert report.overridden == 1

        clock.advance(5)
        await reconciler.run_cycle()
        assert statuspage.updates == [("api", "major_outage")]

    @pytest.mark.asyncio
    async def test_override_registered_by_observer_wins(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "api", status="major_outage")

        class Maintainer:
            async def notify(self, component, status, violation):
                await reconciler.register_override("api", 600, "under_maintenance")

        reconciler.add_observer(Maintainer())
        report = await reconciler.run_cycle()

        assert statuspage.status_of("api") == "under_maintenance"
        assert statuspage.updates == [("api", "under_maintenance")]
        assert report.overridden == 1
        assert report.updated == []

    @pytest.mark.asyncio
    async def test_forced_status_is_pushed_immediately(self, reconciler, newrelic, statuspage):
        _link(newrelic, statuspage, "API")
        await reconciler.run_cycle()

        await reconciler.register_override("Api", 60, "Under_Maintenance")

        assert statuspage.updates == [("API", "under_maintenance")]
        await reconciler.run_cycle()
        assert statuspage.updates == [("API", "under_maintenance")]

    @pytest.mark.asyncio
    async def test_forced_status_on_unknown_component_only_registers(self, reconciler, statuspage):
        override = await reconciler.register_override("ghost", 60, "major_outage")

        assert statuspage.updates == []
        assert reconciler.overrides.is_active("ghost")
        assert override.new_status == "major_outage"

    @pytest.mark.asyncio
    async def test_unknown_forced_status_is_rejected(self, reconciler):
        with pytest.raises(ValueError):
            await reconciler.register_override("api", 60, "on_fire")
        assert not reconciler.overrides.is_active("api")
        reconciler.overrides.cancel_all()


class TestHealthCheck:
    @pytest.mark.asyncio
    async def test_both_up(self, reconciler):
        ok, message = await reconciler.health_check()
        assert ok
        assert "established" in message

    @pytest.mark.asyncio
    async def test_statuspage_down(self, reconciler, statuspage):
        statuspage.down = True
        ok, message = await reconciler.health_check()
        assert not ok
        assert "statuspage.io" in message

    @pytest.mark.asyncio
    async def test_both_down(self, reconciler, newrelic, statuspage):
        newrelic.healthy = False
        statuspage.down = True
        ok, message = await reconciler.health_check()
        assert not ok
        assert "New Relic and statuspage.io" in message
