from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cleanplayer.models.credentials import CredentialRecord, CredentialSummary, TokenGrant


def _record(**overrides) -> CredentialRecord:
    values = {
        "user_id": "user-1",
        "access_token": "access",
        "refresh_token": "refresh",
        "issued_at": datetime.now(timezone.utc),
        "lifetime_seconds": 3600,
    }
    values.update(overrides)
    return CredentialRecord(**values)


def test_recently_issued_record_is_usable() -> None:
    now = datetime.now(timezone.utc)
    record = _record(issued_at=now - timedelta(seconds=10))

    assert record.is_usable(now)


def test_record_past_its_lifetime_is_stale() -> None:
    now = datetime.now(timezone.utc)
    record = _record(issued_at=now - timedelta(seconds=3700))

    assert not record.is_usable(now)
    assert not record.is_absent


def test_record_without_tokens_is_absent_rather_than_stale() -> None:
    record = _record(refresh_token="")

    assert record.is_absent
    assert not record.is_usable()


def test_naive_issue_time_is_treated_as_utc() -> None:
    record = _record(issued_at=datetime(2024, 1, 1, 12, 0, 0))

    assert record.issued_at.tzinfo is timezone.utc
    assert record.expires_at == datetime(2024, 1, 1, 13, 0, 0, tzinfo=timezone.utc)


def test_local_values_use_millisecond_generation_time() -> None:
    issued = datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)
    values = {
        "accessToken": "A",
        "refreshToken": "R",
        "expiryTime": "3600",
        "tokenGenerationTime": str(int(issued.timestamp() * 1000)),
    }

    record = CredentialRecord.from_local_values(values)

    assert record.access_token == "A"
    assert record.refresh_token == "R"
    assert record.issued_at == issued
    assert record.lifetime_seconds == 3600
    assert record.to_local_values() == values


@pytest.mark.parametrize(
    "timing",
    [
        {"expiryTime": "soon"},
        {"expiryTime": "inf", "tokenGenerationTime": "inf"},
        {"expiryTime": "nan", "tokenGenerationTime": "nan"},
        {"expiryTime": "3600", "tokenGenerationTime": "1e20"},
        {"expiryTime": "1e20", "tokenGenerationTime": "0"},
        {"expiryTime": "-60", "tokenGenerationTime": "0"},
    ],
)
def test_malformed_local_timing_yields_stale_record(timing: dict[str, str]) -> None:
    record = CredentialRecord.from_local_values(
        {"accessToken": "A", "refreshToken": "R", **timing}
    )

    assert not record.is_absent
    assert not record.is_usable()
    assert record.expires_at <= datetime.now(timezone.utc)


def test_local_generation_time_in_the_future_is_stale() -> None:
    future = datetime.now(timezone.utc) + timedelta(days=365 * 200)
    record = CredentialRecord.from_local_values(
        {
            "accessToken": "A",
            "refreshToken": "R",
            "expiryTime": "3600",
            "tokenGenerationTime": str(int(future.timestamp() * 1000)),
        }
    )

    assert not record.is_usable()


def test_grant_without_rotated_refresh_token_keeps_previous_one() -> None:
    record = _record(issued_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    refreshed_at = datetime(2024, 1, 2, tzinfo=timezone.utc)

    refreshed = record.apply_grant(
        TokenGrant(access_token="new-access", lifetime_seconds=1800),
        issued_at=refreshed_at,
    )

    assert refreshed.access_token == "new-access"
    assert refreshed.refresh_token == "refresh"
    assert refreshed.issued_at == refreshed_at
    assert refreshed.lifetime_seconds == 1800
    assert record.access_token == "access"


def test_grant_with_rotated_refresh_token_overwrites_previous_one() -> None:
    refreshed = _record().apply_grant(
        TokenGrant(access_token="a2", refresh_token="r2", lifetime_seconds=3600),
        issued_at=datetime.now(timezone.utc),
    )

    assert refreshed.refresh_token == "r2"


def test_summary_omits_tokens() -> None:
    summary = CredentialSummary.from_record(_record())

    dumped = summary.model_dump()
    assert dumped["user_id"] == "user-1"
    assert dumped["usable"] is True
    assert "access_token" not in dumped
    assert "refresh_token" not in dumped
