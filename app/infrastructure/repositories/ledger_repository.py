"""
Ledger Repository
Per-user custodial balances. Mutated only through debit/credit.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional

from app.domain.models import LedgerAccount
from app.infrastructure.kv.base import KeyValueWriter
from app.infrastructure.repositories.base import KVRepository
from app.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DebitResult:
    ok: bool
    reason: Optional[str] = None


class LedgerRepository(KVRepository):
    store_type = "ledger"

    def __init__(self, kv: KeyValueWriter, seed_balances: Optional[Dict[str, Decimal]] = None):
        super().__init__(kv)
        self._seed = {k.upper(): Decimal(v) for k, v in (seed_balances or {}).items()}

    async def get(self, user_id: str) -> LedgerAccount:
        account = await self._load(user_id, LedgerAccount)
        if account is None:
            return LedgerAccount(user_id=user_id)
        return account

    async def ensure_seeded(self, user_id: str) -> LedgerAccount:
        """Credit seed balances once, on first contact"""
        account = await self.get(user_id)
        if account.seeded:
            return account
        account = LedgerAccount(user_id=user_id, balances=dict(self._seed), seeded=True)
        await self._store(user_id, account)
        logger.info("Seeded ledger for %s: %s", user_id, account.balances)
        return account

    async def reset(self, user_id: str) -> LedgerAccount:
        """Restore seed balances"""
        account = LedgerAccount(user_id=user_id, balances=dict(self._seed), seeded=True)
        await self._store(user_id, account)
        logger.info("Reset ledger for %s", user_id)
        return account

    async def balance(self, user_id: str, asset: str) -> Decimal:
        account = await self.get(user_id)
        return account.balance(asset)

    async def credit(self, user_id: str, asset: str, amount: Decimal) -> LedgerAccount:
        if amount <= 0:
            raise ValueError(f"Credit amount must be positive, got {amount}")
        account = await self.get(user_id)
        asset = asset.upper()
        balances = dict(account.balances)
        balances[asset] = balances.get(asset, Decimal("0")) + amount
        account = account.model_copy(update={"balances": balances, "updated_at": utc_now()})
        await self._store(user_id, account)
        logger.info("Credited %s %s to %s", amount, asset, user_id)
        return account

    async def debit(self, user_id: str, asset: str, amount: Decimal) -> DebitResult:
        if not amount.is_finite() or amount <= 0:
            return DebitResult(ok=False, reason="invalid amount")
        account = await self.get(user_id)
        asset = asset.upper()
        available = account.balance(asset)
        if available < amount:
            return DebitResult(ok=False, reason=f"insufficient {asset}")
        balances = dict(account.balances)
        balances[asset] = available - amount
        account = account.model_copy(update={"balances": balances, "updated_at": utc_now()})
        await self._store(user_id, account)
        logger.info("Debited %s %s from %s", amount, asset, user_id)
        return DebitResult(ok=True)
