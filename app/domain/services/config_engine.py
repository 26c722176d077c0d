"""
CONFIG ENGINE
Load, validate, and expose planning configuration

RESPONSIBILITIES:
- Load YAML configuration files (protocols.yml, planning.yml)
- Validate configuration integrity
- Expose read-only typed objects

RULES:
❌ No defaults if config missing
❌ No hardcoded values
✅ Fail fast on invalid config
✅ Deterministic output
"""

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from app.domain.models import Candidate, Intent, RankBy, RiskBand

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parents[3] / "config"

PLAN_INTENTS = (Intent.DEPLOY, Intent.REBALANCE)
WEIGHTINGS = ("schedule", "equal")


@dataclass(frozen=True)
class ProtocolEntry:
    """One catalog row - Immutable"""
    protocol: str
    chain: str
    project_hint: str
    assets: Tuple[str, ...]
    apy: Decimal
    tvl: Decimal
    risk: RiskBand

    def __post_init__(self):
        if not self.protocol:
            raise ValueError("Protocol name cannot be empty")
        if not self.assets:
            raise ValueError(f"Protocol {self.protocol} lists no assets")
        if self.apy < 0 or self.tvl < 0:
            raise ValueError(f"Protocol {self.protocol} has negative apy/tvl")

    def candidates(self) -> List[Candidate]:
        return [
            Candidate(
                protocol=self.protocol,
                chain=self.chain,
                asset=asset,
                apy=self.apy,
                tvl=self.tvl,
                risk_label=self.risk.value,
            )
            for asset in self.assets
        ]


@dataclass(frozen=True)
class ProtocolCatalog:
    """Collection of all configured protocols"""
    entries: List[ProtocolEntry]

    def candidates(self, chain: Optional[str] = None, asset: Optional[str] = None) -> List[Candidate]:
        """Flatten the catalog to one candidate per (protocol, asset)"""
        result = []
        for entry in self.entries:
            if chain and entry.chain != chain:
                continue
            for candidate in entry.candidates():
                if asset and candidate.asset != asset:
                    continue
                result.append(candidate)
        return result

    @property
    def chains(self) -> List[str]:
        return sorted({entry.chain for entry in self.entries})

    @property
    def assets(self) -> List[str]:
        return sorted({asset for entry in self.entries for asset in entry.assets})


@dataclass(frozen=True)
class PlanRules:
    """Plan building rules for one plan-producing intent"""
    intent: Intent
    rank_by: RankBy
    max_allocations: int
    weighting: str
    auto_rebalance: bool

    def __post_init__(self):
        if self.max_allocations < 1:
            raise ValueError(f"{self.intent.value}: max_allocations must be at least 1")
        if self.weighting not in WEIGHTINGS:
            raise ValueError(f"{self.intent.value}: unknown weighting {self.weighting}")


class ConfigEngine:
    """
    Configuration Engine
    Single source of truth for planning configuration
    """

    def __init__(self, config_dir: Path = DEFAULT_CONFIG_DIR):
        """Initialize with config directory"""
        self.config_dir = Path(config_dir)
        self._catalog: ProtocolCatalog = None
        self._plan_rules: Dict[Intent, PlanRules] = None
        self._weight_schedules: Dict[int, Tuple[Decimal, ...]] = None
        self._seed_balances: Dict[str, Decimal] = None
        self._yield_sources_limit: int = None

    def load_all(self) -> None:
        """Load all configuration files"""
        self._load_protocols()
        self._load_planning()
        self._validate_all()

    def _read_yaml(self, name: str, label: str) -> dict:
        path = self.config_dir / name
        if not path.exists():
            raise FileNotFoundError(f"{label} config not found: {path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ValueError(f"{label} config must be a mapping: {path}")
        return data

    def _load_protocols(self) -> None:
        """Load protocol catalog from protocols.yml"""
        data = self._read_yaml("protocols.yml", "Protocol")

        entries = []
        for row in data.get('protocols', []):
            entry = ProtocolEntry(
                protocol=row['protocol'],
                chain=str(row['chain']).lower(),
                project_hint=str(row.get('project_hint', row['protocol'])).lower(),
                assets=tuple(str(a).upper() for a in row['assets']),
                apy=Decimal(str(row['apy'])),
                tvl=Decimal(str(row['tvl'])),
                risk=RiskBand(row['risk']),
            )
            entries.append(entry)

        keys = [(e.protocol, e.chain) for e in entries]
        if len(keys) != len(set(keys)):
            raise ValueError("Duplicate protocol entries found in configuration")

        self._catalog = ProtocolCatalog(entries=entries)

    def _load_planning(self) -> None:
        """Load plan rules, weight schedules and seed balances from planning.yml"""
        data = self._read_yaml("planning.yml", "Planning")

        rules = {}
        for name, row in data['intents'].items():
            intent = Intent(name)
            rules[intent] = PlanRules(
                intent=intent,
                rank_by=RankBy(row['rank_by']),
                max_allocations=int(row['max_allocations']),
                weighting=row['weighting'],
                auto_rebalance=bool(row['auto_rebalance']),
            )
        self._plan_rules = rules

        self._weight_schedules = {
            int(count): tuple(Decimal(str(w)) for w in weights)
            for count, weights in data['weight_schedules'].items()
        }

        self._seed_balances = {
            str(asset).upper(): Decimal(str(amount))
            for asset, amount in data['seed_balances'].items()
        }

        self._yield_sources_limit = int(data['yield_sources']['limit'])

    def _validate_all(self) -> None:
        """Validate configuration integrity"""
        if not self._catalog.entries:
            raise ValueError("Protocol catalog is empty")

        for intent in PLAN_INTENTS:
            if intent not in self._plan_rules:
                raise ValueError(f"Missing plan rules for intent: {intent.value}")

        for count, weights in self._weight_schedules.items():
            if len(weights) != count:
                raise ValueError(f"Weight schedule {count} has {len(weights)} weights")
            if sum(weights) != Decimal('100'):
                raise ValueError(f"Weight schedule {count} must sum to 100, got {sum(weights)}")
            if list(weights) != sorted(weights, reverse=True):
                raise ValueError(f"Weight schedule {count} must be descending")

        for asset, amount in self._seed_balances.items():
            if amount < 0:
                raise ValueError(f"Seed balance for {asset} cannot be negative")

        if self._yield_sources_limit < 1:
            raise ValueError("yield_sources.limit must be at least 1")

    # Properties for read-only access

    @property
    def protocol_catalog(self) -> ProtocolCatalog:
        return self._catalog

    @property
    def weight_schedules(self) -> Dict[int, Tuple[Decimal, ...]]:
        return dict(self._weight_schedules)

    @property
    def seed_balances(self) -> Dict[str, Decimal]:
        return dict(self._seed_balances)

    @property
    def yield_sources_limit(self) -> int:
        return self._yield_sources_limit

    def plan_rules(self, intent: Intent) -> PlanRules:
        """Get plan rules for a plan-producing intent"""
        if intent not in self._plan_rules:
            raise ValueError(f"No plan rules for intent: {intent.value}")
        return self._plan_rules[intent]

    def weight_schedule(self, count: int) -> Optional[Tuple[Decimal, ...]]:
        """Descending weights (percent) for an allocation count, None for equal split"""
        return self._weight_schedules.get(count)
