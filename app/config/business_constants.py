"""
Business logic constants.

Central location for business rules and constants used across the application.
Reward rates and withdrawal tiers are static configuration: changing them
requires a deploy, not an admin action.
"""

from decimal import ROUND_HALF_UP, Decimal


# Money is settled with cent precision
CENT = Decimal("0.01")


class Category:
    """Investment plan categories."""

    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    ALL = (SILVER, GOLD, PLATINUM)


# Reward granted on the first qualifying deposit, as a share of the plan price.
# Silver pays 25%, every other named category 30%, no category pays nothing.
REWARD_RATES: dict[str | None, Decimal] = {
    Category.SILVER: Decimal("0.25"),
    Category.GOLD: Decimal("0.30"),
    Category.PLATINUM: Decimal("0.30"),
    None: Decimal("0"),
}
DEFAULT_NAMED_CATEGORY_RATE = Decimal("0.30")

# Deposit intents
DEPOSIT_AMOUNT_MIN_CENTS = 1
DEPOSIT_AMOUNT_MAX_CENTS = 99
DEPOSIT_AMOUNT_MAX_ATTEMPTS = 100

# Exchange deposit status meaning "credited to the account"
EXCHANGE_DEPOSIT_SUCCESS = 1

# Exchange withdrawal status codes:
# 0 email sent, 1 cancelled, 2 awaiting approval, 3 rejected,
# 4 processing, 5 failure, 6 completed
EXCHANGE_WITHDRAWAL_COMPLETED = 6
EXCHANGE_WITHDRAWAL_FAILED = frozenset({1, 3, 5})

# Withdrawals.
# Only the TRC20 network is supported; both spellings refer to it.
SUPPORTED_WITHDRAWAL_NETWORKS = {"TRC20": "TRX", "TRX": "TRX"}
FIRST_WITHDRAWAL_AMOUNT = Decimal("1")
MIN_WITHDRAWAL_AMOUNT = Decimal("2")

# Maximum withdrawal per (category, level bracket).
# Brackets are inclusive level ranges.
WITHDRAWAL_TIERS: dict[str, list[tuple[int, int, Decimal]]] = {
    Category.SILVER: [
        (1, 2, Decimal("10")),
        (3, 5, Decimal("25")),
        (6, 100, Decimal("50")),
    ],
    Category.GOLD: [
        (1, 2, Decimal("25")),
        (3, 5, Decimal("50")),
        (6, 100, Decimal("100")),
    ],
    Category.PLATINUM: [
        (1, 2, Decimal("50")),
        (3, 5, Decimal("100")),
        (6, 100, Decimal("250")),
    ],
}

# Levels are derived from lifetime points
POINTS_PER_LEVEL = 5000
MAX_LEVEL = 100

# Points a referrer earns per qualified referral, keyed by referrer level
REFERRAL_POINTS_BY_LEVEL = {
    1: 1000,
    2: 1400,
    3: 2000,
}
REFERRAL_POINTS_TOP = 2500

# Daily points claim
DAILY_CLAIM_POINTS = 20
DAILY_CLAIM_LIMIT = 5

# Points are converted into value at this many points per unit, rounded down
POINTS_CONVERSION_RATE = 4


def round_money(amount: Decimal) -> Decimal:
    """Round an amount to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def get_reward_rate(category: str | None) -> Decimal:
    """
    Get reward rate for a category.

    Args:
        category: Plan category or None

    Returns:
        Reward rate as a fraction of the plan price
    """
    if category in REWARD_RATES:
        return REWARD_RATES[category]
    return DEFAULT_NAMED_CATEGORY_RATE


def calculate_reward(base_amount: Decimal, category: str | None) -> Decimal:
    """
    Calculate eligibility reward.

    Formula: round2(base_amount * rate(category))

    Args:
        base_amount: Plan price the deposit was made for
        category: Plan category

    Returns:
        Reward amount, never negative
    """
    if base_amount <= 0:
        return Decimal("0.00")
    return round_money(base_amount * get_reward_rate(category))


def calculate_level(total_points: int) -> int:
    """Level is a pure function of lifetime points: 1 + points // 5000, capped."""
    if total_points <= 0:
        return 1
    return min(MAX_LEVEL, total_points // POINTS_PER_LEVEL + 1)


def referral_points_for_level(level: int) -> int:
    """Points awarded to a referrer of the given level."""
    return REFERRAL_POINTS_BY_LEVEL.get(level, REFERRAL_POINTS_TOP)


def get_withdrawal_cap(category: str | None, level: int) -> Decimal | None:
    """
    Look up the withdrawal cap for a category and level.

    Args:
        category: User category
        level: User level

    Returns:
        Maximum amount or None if the combination has no bracket
    """
    if not category:
        return None
    for low, high, cap in WITHDRAWAL_TIERS.get(category, []):
        if low <= level <= high:
            return cap
    return None


def normalize_network(network: str | None) -> str | None:
    """Map a user-supplied network name to the exchange network code."""
    if not network:
        return None
    return SUPPORTED_WITHDRAWAL_NETWORKS.get(network.strip().upper())


def points_to_value(points: int) -> Decimal:
    """Value of converted points: floor(points / 4) whole units."""
    if points <= 0:
        return Decimal("0")
    return Decimal(points // POINTS_CONVERSION_RATE)
