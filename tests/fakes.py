"""Test doubles for the balance client and notifiers."""

from typing import Dict, List, Union

from nockwatch import DeliveryError, FetchError, Notifier


class FakeBalanceClient:
    """Returns canned balances; an Exception value is raised as a FetchError."""

    def __init__(self, balances: Dict[str, Union[int, Exception]]):
        self.balances = dict(balances)
        self.calls: List[str] = []

    async def fetch(self, address: str) -> int:
        self.calls.append(address)
        value = self.balances[address]
        if isinstance(value, Exception):
            raise FetchError(address, str(value))
        return value

    async def close(self):
        pass


class RecordingNotifier(Notifier):
    """Keeps every delivered event; optionally fails every delivery."""

    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.events = []

    async def deliver(self, event):
        if self.fail:
            raise DeliveryError(self.name, "simulated transport failure")
        self.events.append(event)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000):
        self.now = now

    def __call__(self) -> float:
        return self.now
