"""Tests for single and batch audit execution.

The runner is driven with in-memory launcher, engine and fetcher stand-ins
so that handle reuse and replacement can be observed exactly.
"""

import pytest

from beacon.driver.runner import AuditRunner, failure_record
from tests.utils import FakeEngine, FakeFetcher, FakeLauncher, make_lhr

A = "https://a.test/"
B = "https://b.test/"
C = "https://c.test/"


def make_runner(launcher=None, engine=None, fetcher=None) -> AuditRunner:
    return AuditRunner(
        launcher=launcher or FakeLauncher(),
        engine=engine or FakeEngine(),
        fetcher=fetcher or FakeFetcher(),
    )


class TestRunSingle:
    """Tests for AuditRunner.run_single()."""

    @pytest.mark.asyncio
    async def test_success(self, launcher, engine, fetcher):
        """A successful audit shall return a result and kill its browser."""
        runner = make_runner(launcher, engine, fetcher)

        result = await runner.run_single(A)

        assert result.success is True
        assert result.url == A
        assert result.status_code == 200
        assert result.load_time_ms == 42
        assert launcher.attempts == 1
        assert launcher.handles[0].kill_calls == 1

    @pytest.mark.asyncio
    async def test_fetches_the_final_url(self, launcher, fetcher):
        """The HTML fetch shall target the URL the engine ended on."""
        engine = FakeEngine(reports={A: make_lhr(final_url=B)})
        runner = make_runner(launcher, engine, fetcher)

        result = await runner.run_single(A)

        assert fetcher.calls == [B]
        assert result.url == B
        assert result.requested_url == A

    @pytest.mark.asyncio
    async def test_launch_failure(self):
        """A launch failure shall become a failure record."""
        runner = make_runner(launcher=FakeLauncher(fail_on={1}))

        result = await runner.run_single(A)

        assert result.success is False
        assert result.url == A
        assert result.error.startswith("Failed to launch browser")

    @pytest.mark.asyncio
    async def test_engine_failure_kills_browser(self, launcher):
        """An engine failure shall become a failure record and kill the browser."""
        runner = make_runner(launcher, FakeEngine(failures={A}))

        result = await runner.run_single(A)

        assert result.success is False
        assert result.error == "Lighthouse did not return valid results"
        assert launcher.handles[0].kill_calls == 1

    @pytest.mark.asyncio
    async def test_invalid_url_never_launches(self, launcher):
        """An invalid URL shall fail without starting a browser."""
        runner = make_runner(launcher)

        result = await runner.run_single("ftp://files.test/")

        assert result.success is False
        assert "scheme must be http or https" in result.error
        assert launcher.attempts == 0

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_the_audit(self, launcher, caplog):
        """A failed HTML fetch shall not fail the audit."""
        runner = make_runner(launcher, fetcher=FakeFetcher(failures={A}))

        result = await runner.run_single(A)

        assert result.success is True
        assert result.load_time_ms is None
        assert result.status_code == 200
        assert "Could not fetch HTML" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_failure(self, launcher):
        """An unexpected exception shall be reported, not raised."""
        engine = FakeEngine(errors={A: RuntimeError("engine crashed")})
        runner = make_runner(launcher, engine)

        result = await runner.run_single(A)

        assert result.success is False
        assert result.error == "engine crashed"
        assert launcher.handles[0].kill_calls == 1


class TestRunBatch:
    """Tests for AuditRunner.run_batch()."""

    @pytest.mark.asyncio
    async def test_results_follow_input_order(self, launcher, engine):
        """Results shall appear in input order with consistent counts."""
        runner = make_runner(launcher, engine)

        summary = await runner.run_batch([A, B, C])

        assert [r.url for r in summary.results] == [A, B, C]
        assert summary.success is True
        assert summary.batch is True
        assert (summary.total, summary.completed, summary.failed) == (3, 3, 0)

    @pytest.mark.asyncio
    async def test_reuses_browser_across_successes(self, launcher, engine):
        """Consecutive successful audits shall share one browser."""
        runner = make_runner(launcher, engine)

        await runner.run_batch([A, B, C])

        assert launcher.attempts == 1
        handles = {id(handle) for _, handle in engine.calls}
        assert len(handles) == 1
        assert launcher.handles[0].kill_calls == 1

    @pytest.mark.asyncio
    async def test_replaces_browser_after_failure(self, launcher):
        """The browser used by a failed audit shall never be used again."""
        engine = FakeEngine(failures={B})
        runner = make_runner(launcher, engine)

        summary = await runner.run_batch([A, B, C])

        assert [r.success for r in summary.results] == [True, False, True]
        assert launcher.attempts == 2
        (_, first), (_, failed), (_, third) = engine.calls
        assert first is failed
        assert third is not failed
        assert failed.kill_calls == 1
        assert third.kill_calls == 1

    @pytest.mark.asyncio
    async def test_launch_failure_then_recovery(self, engine):
        """A failed launch shall fail only its URL; the next URL relaunches."""
        launcher = FakeLauncher(fail_on={1})
        runner = make_runner(launcher, engine)

        summary = await runner.run_batch([A, B])

        assert (summary.total, summary.completed, summary.failed) == (2, 1, 1)
        assert summary.results[0].success is False
        assert summary.results[0].url == A
        assert summary.results[1].success is True
        assert launcher.attempts == 2

    @pytest.mark.asyncio
    async def test_invalid_url_keeps_browser(self, launcher, engine):
        """An invalid URL shall fail without replacing the browser."""
        runner = make_runner(launcher, engine)

        summary = await runner.run_batch([A, "not a url", B])

        assert [r.success for r in summary.results] == [True, False, True]
        assert summary.results[1].url == "not a url"
        assert launcher.attempts == 1

    @pytest.mark.asyncio
    async def test_every_url_failing(self):
        """A batch in which every URL fails shall still be a summary."""
        launcher = FakeLauncher(fail_on={1, 2, 3})
        runner = make_runner(launcher)

        summary = await runner.run_batch([A, B, C])

        assert summary.success is True
        assert (summary.total, summary.completed, summary.failed) == (3, 0, 3)

    @pytest.mark.asyncio
    async def test_unexpected_error_replaces_browser(self, launcher):
        """An unexpected exception shall fail its URL and replace the browser."""
        engine = FakeEngine(errors={A: KeyError("lhr")})
        runner = make_runner(launcher, engine)

        summary = await runner.run_batch([A, B])

        assert [r.success for r in summary.results] == [False, True]
        assert launcher.attempts == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self, launcher):
        """An empty batch shall launch nothing."""
        summary = await make_runner(launcher).run_batch([])

        assert summary.total == 0
        assert launcher.attempts == 0


def test_failure_record_for_plain_exception():
    """A message-less exception shall be reported by its type name."""
    record = failure_record(A, TimeoutError())

    assert record.error == "TimeoutError"
