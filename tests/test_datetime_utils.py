from datetime import date, datetime, timedelta, timezone

from hemolink.utils.datetime_utils import as_utc, next_day_at_hour, start_of_day_utc, utc_day
from hemolink.utils.token_utils import generate_proposal_token, proposal_expiry


def test_as_utc_treats_naive_as_utc():
    naive = datetime(2026, 1, 1, 8, 30)
    assert as_utc(naive) == datetime(2026, 1, 1, 8, 30, tzinfo=timezone.utc)


def test_as_utc_converts_offsets():
    ist = timezone(timedelta(hours=5, minutes=30))
    local = datetime(2026, 1, 1, 2, 0, tzinfo=ist)
    assert as_utc(local) == datetime(2025, 12, 31, 20, 30, tzinfo=timezone.utc)
    assert utc_day(local) == date(2025, 12, 31)


def test_start_of_day_utc():
    assert start_of_day_utc(date(2026, 3, 10)) == datetime(2026, 3, 10, tzinfo=timezone.utc)


def test_next_day_at_hour():
    dt = datetime(2026, 2, 28, 23, 59, tzinfo=timezone.utc)
    assert next_day_at_hour(dt, 10) == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


def test_proposal_token_shape():
    token = generate_proposal_token()
    assert len(token) == 64
    assert token != generate_proposal_token()
    int(token, 16)


def test_proposal_expiry_defaults_to_a_day():
    created = datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert proposal_expiry(created) == created + timedelta(hours=24)
    assert proposal_expiry(created, 2) == created + timedelta(hours=2)
