"""Tests for the query service, chat commands and reports."""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

from salewatch.analytics.reports import ReportService, ReportState
from salewatch.db.unit_of_work import UnitOfWork
from salewatch.query.commands import GENERIC_FAILURE, build_interpreter
from salewatch.query.service import QueryService, period_start
from tests.fixtures.sales import RecordingNotifier, sale_values

# Wednesday
NOW = datetime(2026, 10, 21, 15, 0, tzinfo=timezone.utc)


async def seed(session_factory, rows):
    async with UnitOfWork(session_factory=session_factory) as uow:
        for values in rows:
            await uow.sales.insert_if_absent(**values)
        await uow.commit()


@pytest_asyncio.fixture
async def seeded(session_factory):
    await seed(
        session_factory,
        [
            sale_values("today", date(2026, 10, 21), 5, hour=10),
            sale_values("monday", date(2026, 10, 19), 10, group_id=2),
            sale_values("sunday", date(2026, 10, 18), 20),
            sale_values("first", date(2026, 10, 1), 40, hour=0),
            sale_values("last-month", date(2026, 9, 30), 80, hour=23),
        ],
    )
    return session_factory


def make_service(session_factory, now=NOW):
    return QueryService(session_factory=session_factory, clock=lambda: now)


class TestPeriodStart:
    def test_periods(self):
        assert period_start("today", NOW) == datetime(2026, 10, 21, tzinfo=timezone.utc)
        assert period_start("week", NOW) == datetime(2026, 10, 19, tzinfo=timezone.utc)
        assert period_start("month", NOW) == datetime(2026, 10, 1, tzinfo=timezone.utc)

    def test_monday_week_starts_today(self):
        monday = datetime(2026, 10, 19, 0, 5, tzinfo=timezone.utc)
        assert period_start("week", monday) == datetime(2026, 10, 19, tzinfo=timezone.utc)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_start("year", NOW)


@pytest.mark.asyncio
class TestQueryService:
    async def test_totals(self, seeded):
        service = make_service(seeded)

        assert await service.totals() == {"today": 5, "week": 15, "month": 75}
        assert await service.totals(group_id=2) == {"today": 0, "week": 10, "month": 10}

    async def test_totals_without_sales_are_zero(self, session_factory):
        service = make_service(session_factory)
        assert await service.totals() == {"today": 0, "week": 0, "month": 0}

    async def test_chart_is_zero_filled(self, seeded):
        service = make_service(seeded)

        series = await service.chart()

        assert [p["date"] for p in series] == [
            "2026-10-15",
            "2026-10-16",
            "2026-10-17",
            "2026-10-18",
            "2026-10-19",
            "2026-10-20",
            "2026-10-21",
        ]
        assert [p["total"] for p in series] == [0, 0, 0, 20, 10, 0, 5]

    async def test_chart_for_group(self, seeded):
        series = await make_service(seeded).chart(group_id=2, days=3)
        assert series == [
            {"date": "2026-10-19", "total": 10},
            {"date": "2026-10-20", "total": 0},
            {"date": "2026-10-21", "total": 0},
        ]

    async def test_forecast_needs_snapshot(self, session_factory):
        service = make_service(session_factory)
        assert await service.forecast() is None

        async with UnitOfWork(session_factory=session_factory) as uow:
            await uow.snapshots.upsert_snapshot(date(2026, 10, 20), 70, 40.0, 0.75, 20.0)
            await uow.commit()

        result = await service.forecast()
        assert result.predicted_next == 70
        assert result.confidence == "medium"
        assert result.based_on == date(2026, 10, 20)

    async def test_dashboard_per_group(self, seeded):
        rows = await make_service(seeded).dashboard()

        assert {"group_id": 2, "date": "2026-10-19", "total": 10} in rows
        assert {"group_id": 1, "date": "2026-10-21", "total": 5} in rows
        assert len(rows) == 5

    async def test_recent_sales(self, seeded):
        recent = await make_service(seeded).recent_sales(limit=2)
        assert [s["id_hash"] for s in recent] == ["today", "monday"]


class BrokenQueryService(QueryService):
    async def total_for(self, period, group_id=None):
        raise RuntimeError("database is locked")


@pytest.mark.asyncio
class TestCommands:
    async def test_period_commands(self, seeded):
        interpreter = build_interpreter(make_service(seeded))

        assert (await interpreter.handle("!today")).text == "Today: 5 Robux"
        assert (await interpreter.handle("week")).text == "This week: 15 Robux"
        assert (await interpreter.handle("!MONTH")).text == "This month: 75 Robux"

    async def test_group_argument(self, seeded):
        interpreter = build_interpreter(make_service(seeded))

        reply = await interpreter.handle("!week 2")

        assert reply.command == "week"
        assert reply.text == "This week (group 2): 10 Robux"

    async def test_chart_command(self, seeded):
        reply = await build_interpreter(make_service(seeded)).handle("!chart")

        lines = reply.text.splitlines()
        assert lines[0] == "Last 7 days"
        assert len(lines) == 8
        assert lines[4].startswith("2026-10-18")
        assert lines[4].endswith("#" * 20)

    async def test_forecast_before_any_snapshot(self, session_factory):
        reply = await build_interpreter(make_service(session_factory)).handle("!forecast")
        assert reply.ok
        assert "Not enough data" in reply.text

    async def test_unknown_command_falls_back_to_help(self, session_factory):
        reply = await build_interpreter(make_service(session_factory)).handle("!weather")

        assert reply.command == "help"
        assert "!today" in reply.text
        assert "!forecast" in reply.text

    async def test_handler_failure_returns_generic_reply(self, session_factory):
        interpreter = build_interpreter(BrokenQueryService(session_factory=session_factory))

        reply = await interpreter.handle("!today")

        assert reply.ok is False
        assert reply.text == GENERIC_FAILURE


@pytest.mark.asyncio
class TestReports:
    async def test_daily_and_weekly_on_monday(self, notifier, session_factory):
        await seed(
            session_factory,
            [
                sale_values("sun-1", date(2026, 10, 18), 30, group_id=1),
                sale_values("sun-2", date(2026, 10, 18), 12, group_id=2),
                sale_values("wed", date(2026, 10, 14), 5, group_id=1),
                sale_values("mon", date(2026, 10, 19), 100, group_id=1, hour=1),
            ],
        )
        now = [datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)]
        clock = lambda: now[0]  # noqa: E731
        reports = ReportService(
            query=QueryService(session_factory=session_factory, clock=clock),
            notifier=notifier,
            group_ids=[1, 2],
            state=ReportState(),
            clock=clock,
            session_factory=session_factory,
        )

        assert await reports.send_due() == ["daily", "weekly"]
        daily, weekly = notifier.messages
        assert daily.title == "Daily sales report"
        assert {f.name: f.value for f in daily.fields} == {
            "Total": "42 Robux",
            "Group 1": "30 Robux",
            "Group 2": "12 Robux",
        }
        assert weekly.metadata == {"days": 7, "total": 47}

        # Already sent today
        assert await reports.send_due() == []

        now[0] = datetime(2026, 10, 20, 8, 0, tzinfo=timezone.utc)
        assert await reports.send_due() == ["daily"]
        assert notifier.messages[-1].metadata["total"] == 100

    async def test_restart_does_not_resend(self, notifier, session_factory):
        clock = lambda: datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)  # noqa: E731

        def make_reports():
            return ReportService(
                query=QueryService(session_factory=session_factory, clock=clock),
                notifier=notifier,
                group_ids=[1],
                state=ReportState(),
                clock=clock,
                session_factory=session_factory,
            )

        assert await make_reports().send_due() == ["daily", "weekly"]
        assert await make_reports().send_due() == []
        assert len(notifier.messages) == 2

        async with UnitOfWork(session_factory=session_factory) as uow:
            assert await uow.sent_reports.was_sent("daily", date(2026, 10, 19))
            assert await uow.sent_reports.was_sent("weekly", date(2026, 10, 19))
            assert not await uow.sent_reports.was_sent("daily", date(2026, 10, 20))

    async def test_failed_delivery_is_not_recorded(self, session_factory):
        clock = lambda: datetime(2026, 10, 20, 8, 0, tzinfo=timezone.utc)  # noqa: E731
        reports = ReportService(
            query=QueryService(session_factory=session_factory, clock=clock),
            notifier=RecordingNotifier(fail=True),
            group_ids=[1],
            clock=clock,
            session_factory=session_factory,
        )

        with pytest.raises(RuntimeError):
            await reports.send_due()

        async with UnitOfWork(session_factory=session_factory) as uow:
            assert not await uow.sent_reports.was_sent("daily", date(2026, 10, 20))

    async def test_report_includes_forecast(self, notifier, session_factory):
        async with UnitOfWork(session_factory=session_factory) as uow:
            await uow.snapshots.upsert_snapshot(date(2026, 10, 20), 70, 40.0, 0.75, 20.0)
            await uow.commit()
        reports = ReportService(
            query=QueryService(session_factory=session_factory, clock=lambda: NOW),
            notifier=notifier,
            group_ids=[1],
        )

        message = await reports.build_report(1, "Daily sales report")

        fields = {f.name: f.value for f in message.fields}
        assert fields == {"Total": "0 Robux", "Next 24h": "~70 Robux (medium)"}
