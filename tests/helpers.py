from datetime import date, timedelta

# fixed clock for every date rule
TODAY = date(2026, 3, 10)


def days(n: int) -> date:
    return TODAY + timedelta(days=n)
