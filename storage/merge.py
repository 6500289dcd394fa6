"""Field-level merge rules for writing scraped data over stored records."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

from models.constants import (
    ALWAYS_OVERWRITE,
    DEFAULT_MERGE_RULES,
    MERGE_POLICIES,
    NEVER_OVERWRITE,
    OVERWRITE_IF_CHANGED,
    OVERWRITE_IF_EMPTY,
    PROTECTED_FIELDS,
)
from models.listing import ListingRecord
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

# Comparator(old, new) -> True when the values count as equal
Comparator = Callable[[Any, Any], bool]


def is_empty(value: Any) -> bool:
    """
    Whether a stored or scraped value counts as absent.

    None, blank strings, empty collections, numeric zero and dicts whose
    values are all empty are absent. Booleans are never empty.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    if isinstance(value, dict):
        return all(is_empty(v) for v in value.values())
    return False


def equals(old: Any, new: Any) -> bool:
    return old == new


def numeric_tolerance(tolerance: float = 0.01) -> Comparator:
    """Numbers within `tolerance` of each other are equal."""

    def compare(old: Any, new: Any) -> bool:
        try:
            return abs(float(old) - float(new)) <= tolerance
        except (TypeError, ValueError):
            return old == new

    return compare


def unordered(old: Any, new: Any) -> bool:
    """Collections with the same members are equal regardless of order."""
    if isinstance(old, (list, tuple, set)) and isinstance(new, (list, tuple, set)):
        return sorted(map(str, old)) == sorted(map(str, new))
    return old == new


def normalized_text(old: Any, new: Any) -> bool:
    """Strings equal after collapsing whitespace."""
    if isinstance(old, str) and isinstance(new, str):
        return " ".join(old.split()) == " ".join(new.split())
    return old == new


COMPARATORS: Dict[str, Callable[..., Comparator]] = {
    "equals": lambda **_: equals,
    "numeric_tolerance": lambda tolerance=0.01, **_: numeric_tolerance(tolerance),
    "unordered": lambda **_: unordered,
    "normalized_text": lambda **_: normalized_text,
}


@dataclass(frozen=True)
class MergeRule:
    """Policy for one field."""

    field: str
    policy: str = NEVER_OVERWRITE
    comparator: str = "equals"
    tolerance: float = 0.01

    def compare(self, old: Any, new: Any) -> bool:
        return COMPARATORS[self.comparator](tolerance=self.tolerance)(old, new)

    @classmethod
    def from_dict(cls, field_name: str, data: Mapping[str, Any]) -> "MergeRule":
        policy = data.get("policy", NEVER_OVERWRITE)
        if policy not in MERGE_POLICIES:
            raise ValidationError(
                f"Unknown merge policy '{policy}' for field '{field_name}'",
                {"field": field_name, "policy": policy},
            )
        comparator = data.get("comparator", "equals")
        if comparator not in COMPARATORS:
            raise ValidationError(
                f"Unknown comparator '{comparator}' for field '{field_name}'",
                {"field": field_name, "comparator": comparator},
            )
        return cls(
            field=field_name,
            policy=policy,
            comparator=comparator,
            tolerance=float(data.get("tolerance", 0.01)),
        )


class MergeRuleSet:
    """
    Immutable field -> MergeRule table.

    Built once at startup from DEFAULT_MERGE_RULES plus the optional
    "merge_rules" overrides in config.json.
    """

    def __init__(self, rules: Mapping[str, MergeRule]):
        self._rules = MappingProxyType(dict(rules))

    @classmethod
    def from_config(cls, overrides: Optional[Mapping[str, Mapping[str, Any]]] = None) -> "MergeRuleSet":
        table: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in DEFAULT_MERGE_RULES.items()}
        for field_name, rule in (overrides or {}).items():
            table[field_name] = dict(rule)
        return cls({name: MergeRule.from_dict(name, rule) for name, rule in table.items()})

    def rule_for(self, field_name: str) -> MergeRule:
        return self._rules.get(field_name) or MergeRule(field=field_name)

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        return {
            name: {"policy": r.policy, "comparator": r.comparator, "tolerance": r.tolerance}
            for name, r in self._rules.items()
        }

    def __len__(self) -> int:
        return len(self._rules)


@dataclass
class MergeResult:
    """Outcome of a merge: the changed-field delta only."""

    changes: Dict[str, Any] = field(default_factory=dict)
    inserted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.changes)


class MergeEngine:
    """
    Apply per-field merge rules to incoming scraped data.

    Example:
        >>> engine = MergeEngine(MergeRuleSet.from_config())
        >>> result = engine.merge(existing_record, {"price": 6930000.0})
        >>> result.changes
        {'price': 6930000.0, 'last_updated': '...'}
    """

    def __init__(self, rules: Optional[MergeRuleSet] = None, clock: Optional[Callable[[], str]] = None):
        self.rules = rules or MergeRuleSet.from_config()
        self._clock = clock or (lambda: datetime.now(timezone.utc).isoformat())

    def should_take(self, rule: MergeRule, old: Any, new: Any) -> bool:
        """Decide whether `new` replaces `old` under `rule`."""
        if rule.policy == ALWAYS_OVERWRITE:
            return not rule.compare(old, new)

        # An extractor's empty value means "not found", never "cleared"
        if is_empty(new):
            return False

        if rule.policy == NEVER_OVERWRITE:
            return is_empty(old)
        if rule.policy == OVERWRITE_IF_EMPTY:
            return is_empty(old)
        if rule.policy == OVERWRITE_IF_CHANGED:
            return is_empty(old) or not rule.compare(old, new)
        return False

    def merge(
        self,
        existing: Optional[Union[ListingRecord, Mapping[str, Any]]],
        incoming: Mapping[str, Any],
    ) -> MergeResult:
        """
        Compute the fields that change when `incoming` is merged into `existing`.

        Args:
            existing: Stored record (None when the listing is new)
            incoming: Scraped field values

        Returns:
            MergeResult with the delta. A new record is a plain insert with
            every known incoming field; otherwise only changed fields are
            returned, plus a fresh last_updated when anything changed.
        """
        known = set(ListingRecord.field_names())
        now = self._clock()

        if existing is None:
            changes = {k: v for k, v in incoming.items() if k in known}
            changes["created_at"] = changes.get("created_at") or now
            changes["last_updated"] = now
            return MergeResult(changes=changes, inserted=True)

        current = existing.to_dict() if isinstance(existing, ListingRecord) else dict(existing)
        changes: Dict[str, Any] = {}

        for field_name, new_value in incoming.items():
            if field_name not in known:
                logger.debug(f"Ignoring unknown field '{field_name}' in merge")
                continue
            if field_name in PROTECTED_FIELDS or field_name == "last_updated":
                continue
            rule = self.rules.rule_for(field_name)
            old_value = current.get(field_name)
            if self.should_take(rule, old_value, new_value):
                changes[field_name] = new_value

        if changes:
            changes["last_updated"] = now
            logger.debug(f"Merge changed fields: {sorted(changes)}")
        return MergeResult(changes=changes)
