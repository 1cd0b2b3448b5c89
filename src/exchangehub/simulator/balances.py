"""
Balance buckets of the simulated account, persisted at account/balances.
"""

from typing import Dict, Mapping

from src.exchangehub.shared.errors import InsufficientBalanceError
from src.exchangehub.shared.models import Balance
from src.exchangehub.storage.json_storage import Storage

BUCKETS = ("free", "locked", "staked")
PRECISION = 8
TOLERANCE = 1e-9

BalanceChanges = Mapping[str, Mapping[str, float]]


class BalanceBook:
    """Reads and atomically updates {asset: {free, locked, staked}}."""

    KEY = "account/balances"

    def __init__(self, storage: Storage, exchange_name: str = "fake"):
        self.storage = storage
        self.exchange_name = exchange_name

    def load(self) -> Dict[str, Dict[str, float]]:
        return self.storage.read(self.KEY) or {}

    def get(self, asset: str) -> Balance:
        asset = asset.upper()
        buckets = self.load().get(asset, {})
        return Balance(asset=asset, exchange=self.exchange_name, **{b: buckets.get(b, 0.0) for b in BUCKETS})

    def all(self) -> Dict[str, Balance]:
        return {
            asset: Balance(asset=asset, exchange=self.exchange_name, **{b: buckets.get(b, 0.0) for b in BUCKETS})
            for asset, buckets in self.load().items()
        }

    def apply(self, changes: BalanceChanges) -> Dict[str, Dict[str, float]]:
        """Apply bucket deltas, all or nothing.

        Every resulting bucket is checked before anything is written; the
        first bucket that would go negative raises InsufficientBalanceError
        and the ledger is left untouched.
        """
        balances = self.load()
        updated = {asset: dict(buckets) for asset, buckets in balances.items()}

        for asset, deltas in changes.items():
            asset = asset.upper()
            buckets = updated.setdefault(asset, {b: 0.0 for b in BUCKETS})
            for bucket, delta in deltas.items():
                if bucket not in BUCKETS:
                    raise ValueError(f"Unknown balance bucket: {bucket}")
                current = buckets.get(bucket, 0.0)
                result = current + delta
                if result < -TOLERANCE:
                    raise InsufficientBalanceError(asset, -delta, current, self.exchange_name)
                buckets[bucket] = round(max(0.0, result), PRECISION)

        self.storage.write(self.KEY, updated)
        return updated

    def lock(self, asset: str, amount: float) -> None:
        self.apply({asset: {"free": -amount, "locked": amount}})

    def unlock(self, asset: str, amount: float) -> None:
        self.apply({asset: {"locked": -amount, "free": amount}})

    def reset(self, initial: Mapping[str, float]) -> None:
        self.storage.write(
            self.KEY,
            {asset.upper(): {"free": float(amount), "locked": 0.0, "staked": 0.0} for asset, amount in initial.items()},
        )
