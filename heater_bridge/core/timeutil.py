from datetime import datetime, timezone


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def from_epoch_ms(ms: float) -> datetime:
    return datetime.fromtimestamp(float(ms) / 1000.0, tz=timezone.utc)
