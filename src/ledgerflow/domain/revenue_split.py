"""Revenue split calculator for segment entries.

Pure functions: no store access, no side effects.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Mapping, Optional, Sequence, Union

from ledgerflow.domain.entities import PartnerShare, PricingRule, ServiceCounts, ShareBreakdown
from ledgerflow.domain.errors import ValidationError

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")

PRICING_FIXED = "fixed"
PRICING_PERCENTAGE = "percentage"

SERVICES = ("tickets", "visas", "hotels", "groups")

# Used when a client has no stored segment settings
DEFAULT_PRICING_RULES = {
    "tickets": PricingRule(PRICING_PERCENTAGE, Decimal("50")),
    "visas": PricingRule(PRICING_PERCENTAGE, Decimal("100")),
    "hotels": PricingRule(PRICING_PERCENTAGE, Decimal("100")),
    "groups": PricingRule(PRICING_PERCENTAGE, Decimal("100")),
}

RuleInput = Union[PricingRule, Mapping, None]


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _as_rule(rule: RuleInput) -> PricingRule:
    if isinstance(rule, PricingRule):
        return rule
    if rule is not None and not isinstance(rule, Mapping):
        raise ValidationError(f"Pricing rule must be an object, got '{rule}'")
    return PricingRule.from_dict(rule)


def line_profit(count: Optional[int], rule: RuleInput) -> Decimal:
    """Profit of one service line.

    ``fixed`` pays ``value`` per unit, ``percentage`` pays ``value`` percent of
    each unit. A missing count, missing value or unknown type yields zero.
    """
    rule = _as_rule(rule)
    if count is None or rule.value is None:
        return ZERO
    if rule.type == PRICING_FIXED:
        return _cents(Decimal(count) * rule.value)
    if rule.type == PRICING_PERCENTAGE:
        return _cents(Decimal(count) * rule.value / HUNDRED)
    return ZERO


def resolve_pricing_rules(stored: Optional[Mapping[str, RuleInput]]) -> dict[str, PricingRule]:
    """Fill in default rules for any service without a stored one."""
    stored = stored or {}
    return {
        service: _as_rule(stored[service]) if stored.get(service) else DEFAULT_PRICING_RULES[service]
        for service in SERVICES
    }


def compute_shares(
    counts: ServiceCounts,
    pricing_rules: Mapping[str, RuleInput],
    company_split_percent: Optional[Decimal] = None,
) -> ShareBreakdown:
    """Compute profits and the company/partner split for a segment entry.

    Args:
        counts: Per-service sale counts
        pricing_rules: Rule per service name ("tickets", "visas", "hotels", "groups")
        company_split_percent: Company's percentage when a partner shares the
            profit, or None when there is no partner

    Returns:
        ShareBreakdown where ``company_share + partner_share == total`` exactly

    Raises:
        ValidationError: If company_split_percent is outside 0-100
    """
    ticket_profits = line_profit(counts.tickets, pricing_rules.get("tickets"))
    other_profits = (
        line_profit(counts.visas, pricing_rules.get("visas"))
        + line_profit(counts.hotels, pricing_rules.get("hotels"))
        + line_profit(counts.groups, pricing_rules.get("groups"))
    )
    total = ticket_profits + other_profits

    if company_split_percent is None:
        return ShareBreakdown(ticket_profits, other_profits, total, total, ZERO.quantize(CENT))

    percent = Decimal(company_split_percent)
    if percent < 0 or percent > HUNDRED:
        raise ValidationError(f"Company split must be between 0 and 100, got {percent}")
    company_share = _cents(total * percent / HUNDRED)
    # Derived, never computed independently
    partner_share = total - company_share
    return ShareBreakdown(ticket_profits, other_profits, total, company_share, partner_share)


def split_partner_share(
    partner_share: Decimal, partners: Sequence[PartnerShare]
) -> tuple[PartnerShare, ...]:
    """Divide a partner share among partners by percentage.

    The last partner absorbs the rounding remainder so the shares always add
    up to ``partner_share``.

    Raises:
        ValidationError: If a percentage is negative or they do not total 100
    """
    if not partners:
        return ()
    if any(p.percentage < 0 for p in partners):
        raise ValidationError("Partner percentages cannot be negative")
    total_percent = sum((Decimal(p.percentage) for p in partners), ZERO)
    if total_percent != HUNDRED:
        raise ValidationError(f"Partner percentages must total 100, got {total_percent}")

    shares: list[PartnerShare] = []
    allocated = ZERO
    for partner in partners[:-1]:
        share = _cents(partner_share * Decimal(partner.percentage) / HUNDRED)
        allocated += share
        shares.append(PartnerShare(partner.partner_id, Decimal(partner.percentage), share))
    last = partners[-1]
    shares.append(PartnerShare(last.partner_id, Decimal(last.percentage), partner_share - allocated))
    return tuple(shares)
