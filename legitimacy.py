"""
Order legitimacy filtering

Separates real customer orders from demo, dummy and test artifacts on
read paths. The filter never mutates or re-sorts its input and never
raises for well-formed records; anything it cannot verify is excluded.

Predicates are checked in a fixed order and the first failing one is
reported as the exclusion reason:

    no_items -> missing_user -> inactive_user -> dummy_order_number
    -> dummy_email -> non_positive_total

An exempt email only lifts the email predicate. An order whose number
matches a dummy pattern is excluded even when its user is exempt.
"""

import logging
import re
from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

NO_ITEMS = "no_items"
MISSING_USER = "missing_user"
INACTIVE_USER = "inactive_user"
DUMMY_ORDER_NUMBER = "dummy_order_number"
DUMMY_EMAIL = "dummy_email"
NON_POSITIVE_TOTAL = "non_positive_total"

DUMMY_ORDER_NUMBER_PATTERNS: Tuple[str, ...] = (
    r"^DEMO-",
    r"^DUMMY-",
    r"^SAMPLE-",
    r"^ORD-(000000|111111|999999)$",
)

PLACEHOLDER_EMAIL_PATTERNS: Tuple[str, ...] = (
    r"^dummy@",
    r"^sample@",
    r"^fake@",
    r"^placeholder@",
    r"^noreply@",
    r"^donotreply@",
)


@dataclass(frozen=True)
class LegitimacyRules:
    """Pattern configuration for deciding whether an order is real.

    Patterns are regular expressions matched case-insensitively from the
    start of the value. ``exempt_emails`` are compared case-insensitively
    against the whole address.
    """

    name: str
    version: int = 1
    order_number_patterns: Tuple[str, ...] = DUMMY_ORDER_NUMBER_PATTERNS
    email_patterns: Tuple[str, ...] = PLACEHOLDER_EMAIL_PATTERNS
    exempt_emails: FrozenSet[str] = field(default_factory=frozenset)

    def is_dummy_order_number(self, order_number: Optional[str]) -> bool:
        return _matches_any(self.order_number_patterns, str(order_number or ""))

    def is_dummy_email(self, email: Optional[str]) -> bool:
        email = str(email or "").strip()
        if email.lower() in {e.lower() for e in self.exempt_emails}:
            return False
        return _matches_any(self.email_patterns, email)


def _matches_any(patterns: Iterable[str], value: str) -> bool:
    return any(re.match(p, value, re.IGNORECASE) for p in patterns)


STRICT_ADMIN = LegitimacyRules(
    name="strict-admin",
    email_patterns=PLACEHOLDER_EMAIL_PATTERNS + (r"^test@", r"^demo@example\."),
)

# Keeps the demo account visible so checkout can be exercised end to end
LENIENT_CUSTOMER = LegitimacyRules(
    name="lenient-customer-facing",
    exempt_emails=frozenset({"demo@example.com"}),
)

PRESETS: Dict[str, LegitimacyRules] = {r.name: r for r in (STRICT_ADMIN, LENIENT_CUSTOMER)}


def get_rules(name: str) -> LegitimacyRules:
    try:
        return PRESETS[name]
    except KeyError:
        raise KeyError(f"Unknown legitimacy preset '{name}'. Available: {', '.join(sorted(PRESETS))}") from None


def _user_exclusion(user: Any) -> Optional[str]:
    if not isinstance(user, Mapping):
        return MISSING_USER
    if not user.get("is_active", False):
        return INACTIVE_USER
    return None


def is_legitimate_user(user: Optional[Mapping[str, Any]], rules: LegitimacyRules) -> bool:
    """User-level predicates only: present, active and not a placeholder account."""
    if _user_exclusion(user):
        return False
    return not rules.is_dummy_email(user.get("email"))


def exclusion_reason(order: Mapping[str, Any], rules: LegitimacyRules) -> Optional[str]:
    """Return why ``order`` is excluded, or ``None`` if it is legitimate."""
    if not order.get("order_items"):
        return NO_ITEMS

    user = order.get("user")
    reason = _user_exclusion(user)
    if reason:
        return reason

    if rules.is_dummy_order_number(order.get("order_number")):
        return DUMMY_ORDER_NUMBER
    if rules.is_dummy_email(user.get("email")):
        return DUMMY_EMAIL

    total = order.get("total")
    if isinstance(total, bool) or not isinstance(total, Number) or not total > 0:
        return NON_POSITIVE_TOTAL
    return None


def partition_orders(orders: Iterable[Mapping[str, Any]], rules: LegitimacyRules
                     ) -> Tuple[List[Mapping[str, Any]], List[Tuple[Mapping[str, Any], str]]]:
    """Split ``orders`` into legitimate orders and (order, reason) pairs, keeping input order."""
    legitimate: List[Mapping[str, Any]] = []
    excluded: List[Tuple[Mapping[str, Any], str]] = []
    for order in orders:
        reason = exclusion_reason(order, rules)
        if reason is None:
            legitimate.append(order)
        else:
            logger.debug("Filtering out order %s: %s", order.get("order_number"), reason)
            excluded.append((order, reason))

    logger.info("Legitimacy filter (%s v%d): %d kept, %d filtered",
                rules.name, rules.version, len(legitimate), len(excluded))
    return legitimate, excluded


def filter_legitimate_orders(orders: Iterable[Mapping[str, Any]], rules: LegitimacyRules) -> List[Mapping[str, Any]]:
    legitimate, _ = partition_orders(orders, rules)
    return legitimate
