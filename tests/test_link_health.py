from datetime import datetime, timedelta
from unittest.mock import Mock, patch

from linkpeek.models.tables import Link, RedirectRecord
from linkpeek.tasks.health import run_link_health, refresh_link_health

NOW = datetime(2026, 3, 1, 12, 0, 0)


def _link(session, link_id):
    session.expire_all()
    return session.get(Link, link_id)


class TestLinkHealth:
    def test_healthy_link_written_back(self, session, make_link):
        make_link("ok", "example.com/page")
        summary = run_link_health(session, NOW)
        assert summary["healthy"] == 1
        link = _link(session, "ok")
        assert link.health_status == "healthy"
        assert link.health_checked_at == NOW
        assert link.sanitized_dest_url == "https://example.com/page"
        assert link.redirect_chain_length == 1

    def test_shortener_is_warning(self, session, make_link):
        make_link("short", "https://bit.ly/abc")
        run_link_health(session, NOW)
        link = _link(session, "short")
        assert link.health_status == "warning"
        assert link.redirect_chain_length == 2

    def test_unsafe_is_error(self, session, make_link):
        make_link("phish", "https://free-prizes.tk/login")
        run_link_health(session, NOW)
        assert _link(session, "phish").health_status == "error"

    def test_invalid_keeps_previous_sanitized(self, session, make_link):
        make_link("long", "https://example.com/" + "a" * 3000, sanitized_dest_url="https://example.com/")
        run_link_health(session, NOW)
        link = _link(session, "long")
        assert link.health_status == "error"
        assert link.sanitized_dest_url == "https://example.com/"

    def test_low_success_rate_and_load_time(self, session, make_link):
        make_link("flaky")
        for i in range(10):
            session.add(RedirectRecord(link_id="flaky", ts=NOW - timedelta(days=1), success=i < 5, load_time_ms=100 * (i + 1)))
        session.add(RedirectRecord(link_id="flaky", ts=NOW - timedelta(days=30), success=True, load_time_ms=99999))
        session.commit()
        run_link_health(session, NOW)
        link = _link(session, "flaky")
        assert link.health_status == "warning"
        assert link.avg_redirect_time_ms == 550

    def test_inactive_links_skipped(self, session, make_link):
        make_link("off", is_active=False)
        assert run_link_health(session, NOW)["checked"] == 0
        assert _link(session, "off").health_status == "unknown"

    def test_chain_inspection(self, session, make_link):
        make_link("hop", "https://example.com/start")
        with patch("linkpeek.redirect.chain.requests.head", return_value=Mock(url="https://example.com/final")) as head:
            run_link_health(session, NOW, inspect_chain=True)
        assert head.call_args.kwargs["timeout"] == 3.0
        assert _link(session, "hop").redirect_chain_length == 2

    def test_failures_isolated_per_link(self, session, make_link, monkeypatch):
        make_link("a", "https://example.com/a")
        make_link("b", "https://example.com/b")
        from linkpeek.tasks import health

        real = health.evaluate_link

        def flaky(session_, link, *args):
            if link.id == "a":
                raise RuntimeError("boom")
            return real(session_, link, *args)

        monkeypatch.setattr(health, "evaluate_link", flaky)
        summary = run_link_health(session, NOW)
        assert summary["failed"] == 1
        assert summary["healthy"] == 1
        assert _link(session, "b").health_status == "healthy"

    def test_celery_task_entrypoint(self, engine, make_link):
        make_link("ok")
        result = refresh_link_health()
        assert result["checked"] == 1
