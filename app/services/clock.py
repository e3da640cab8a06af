from datetime import datetime, timezone


class SystemClock:
    """Relógio do servidor. Injetado nas rotas para poder ser fixado nos testes."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


_clock = SystemClock()


def get_clock() -> SystemClock:
    return _clock


def as_utc(value: datetime) -> datetime:
    # SQLite devolve datetimes sem fuso; tudo que gravamos é UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
