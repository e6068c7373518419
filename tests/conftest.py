from __future__ import annotations

import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from fakes import START, fake_tables  # noqa: E402

from gimerr.core.capabilities import reset_capabilities  # noqa: E402
from gimerr.core.settings import S  # noqa: E402
from gimerr.core.tables import T  # noqa: E402

CLOCK_MODULES = (
    "gimerr.services.wallet",
    "gimerr.services.highlights",
    "gimerr.services.settlement",
    "gimerr.services.revenue_share",
    "gimerr.services.payouts",
)


class Clock:
    def __init__(self, now: int) -> None:
        self.now = now
        self._ms = itertools.count()

    def advance(self, seconds: int) -> None:
        self.now += seconds

    def ts(self) -> int:
        return self.now

    def ms(self) -> int:
        # strictly increasing so event ordering follows call order
        return self.now * 1000 + next(self._ms)


@pytest.fixture
def settings():
    """Setter for the frozen settings object; every change is undone after the test."""
    saved = {}

    def set_setting(name, value):
        if name not in saved:
            saved[name] = getattr(S, name)
        object.__setattr__(S, name, value)

    yield set_setting
    for name, value in saved.items():
        object.__setattr__(S, name, value)
    reset_capabilities()


@pytest.fixture
def tables(settings):
    fakes = fake_tables()
    originals = {name: getattr(T, name) for name in fakes}
    for name, fake in fakes.items():
        object.__setattr__(T, name, fake)
    for cap in ("cap_wallets", "cap_wallet_events", "cap_partner_payouts", "cap_admin_beneficiary"):
        settings(cap, True)
    reset_capabilities()
    yield SimpleNamespace(**fakes)
    for name, table in originals.items():
        object.__setattr__(T, name, table)


@pytest.fixture
def clock(monkeypatch):
    c = Clock(START)
    for module in CLOCK_MODULES:
        monkeypatch.setattr(f"{module}.now_ts", c.ts)
    monkeypatch.setattr("gimerr.services.wallet.now_ms", c.ms)
    return c

