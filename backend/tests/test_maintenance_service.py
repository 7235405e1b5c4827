from datetime import timedelta

from backoffice.models import LotteryBusinessDay, Store
from backoffice.services.maintenance_service import cleanup_expired_pending_closes
from backoffice.time_utils import utcnow


def _pending_day(db_session, store, expires_at):
    now = utcnow()
    day = LotteryBusinessDay(
        store_id=store.id,
        business_date=now.date(),
        status="PENDING_CLOSE",
        opened_at=now - timedelta(hours=8),
        pending_close_data={"closings": [], "entry_method": "SCAN"},
        pending_close_at=now - timedelta(hours=2),
        pending_close_expires_at=expires_at,
    )
    db_session.add(day)
    db_session.commit()
    return day


def _store(db_session, code):
    store = Store(name=f"Store {code}", code=code)
    db_session.add(store)
    db_session.commit()
    return store


def test_sweep_reverts_only_expired(db_session):
    now = utcnow()
    expired = _pending_day(db_session, _store(db_session, "S1"), now - timedelta(minutes=5))
    live = _pending_day(db_session, _store(db_session, "S2"), now + timedelta(minutes=30))

    assert cleanup_expired_pending_closes() == 1

    expired = db_session.get(LotteryBusinessDay, expired.id)
    assert expired.status == "OPEN"
    assert expired.pending_close_data is None
    assert expired.pending_close_expires_at is None
    assert db_session.get(LotteryBusinessDay, live.id).status == "PENDING_CLOSE"


def test_sweep_is_repeatable(db_session):
    _pending_day(db_session, _store(db_session, "S1"), utcnow() - timedelta(minutes=5))

    assert cleanup_expired_pending_closes() == 1
    assert cleanup_expired_pending_closes() == 0


def test_sweep_with_explicit_cutoff(db_session):
    now = utcnow()
    day = _pending_day(db_session, _store(db_session, "S1"), now + timedelta(minutes=30))

    assert cleanup_expired_pending_closes(now=now) == 0
    assert cleanup_expired_pending_closes(now=now + timedelta(hours=1)) == 1
    assert db_session.get(LotteryBusinessDay, day.id).status == "OPEN"


def test_cleanup_cli(app, db_session):
    _pending_day(db_session, _store(db_session, "S1"), utcnow() - timedelta(minutes=5))

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-expired-lottery-closes"])

    assert result.exit_code == 0
    assert "Reverted 1 expired pending lottery close(s)." in result.output


def test_cleanup_cli_rejects_bad_cutoff(app, db_session):
    result = app.test_cli_runner().invoke(
        args=["maintenance", "cleanup-expired-lottery-closes", "--as-of", "yesterday"]
    )

    assert result.exit_code != 0
    assert "Not an ISO-8601 datetime" in result.output


def test_status_cli(app, db_session, store, open_day):
    result = app.test_cli_runner().invoke(args=["lottery", "status", "--store-id", store.id])

    assert result.exit_code == 0
    assert open_day.id in result.output
    assert "OPEN" in result.output


def test_status_cli_bad_store_id(app, db_session):
    result = app.test_cli_runner().invoke(args=["lottery", "status", "--store-id", "nope"])

    assert result.exit_code != 0
    assert "INVALID_CLOSINGS" in result.output


def test_days_cli(app, db_session, store, open_day):
    result = app.test_cli_runner().invoke(args=["lottery", "days", "--store-id", store.id])

    assert result.exit_code == 0
    assert open_day.id in result.output
