"""
Interest Accrual Module

Simple annual interest with integer truncation. The annual amount is
floor-divided first and then multiplied by the number of whole years
elapsed, so accrual is a step function: nothing accrues before a full
year has passed and it then jumps in whole-year increments.
"""

from .config import SECONDS_PER_YEAR


def annual_interest(principal: int, rate_percent: int) -> int:
    """Interest earned on principal over one whole year"""
    return principal * rate_percent // 100


def elapsed_years(elapsed_time: int, seconds_per_year: int = SECONDS_PER_YEAR) -> int:
    """Number of whole years contained in elapsed_time"""
    return elapsed_time // seconds_per_year


def calculate_interest(
    principal: int,
    rate_percent: int,
    elapsed_time: int,
    seconds_per_year: int = SECONDS_PER_YEAR
) -> int:
    """
    Calculate accrued interest.

    Args:
        principal: Principal amount in base units
        rate_percent: Annual rate in whole percent
        elapsed_time: Seconds since the accrual anchor
        seconds_per_year: Length of an accrual year

    Returns:
        floor(floor(principal * rate / 100) * floor(elapsed / year))

    Raises:
        ValueError: If any input is negative or the year length is not positive
    """
    if principal < 0 or rate_percent < 0 or elapsed_time < 0:
        raise ValueError("Interest inputs must not be negative")
    if seconds_per_year <= 0:
        raise ValueError("seconds_per_year must be positive")

    return annual_interest(principal, rate_percent) * elapsed_years(elapsed_time, seconds_per_year)


def required_collateral(loan_amount: int, collateral_ratio: int) -> int:
    """Minimum collateral for a loan, floor-divided"""
    return loan_amount * collateral_ratio // 100
