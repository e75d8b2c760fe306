# File: src/parkinglot/domain/strategies.py
"""
Strategy Pattern Implementation for the Parking Allocation Engine

Strategies selected at runtime:
1. Pricing Strategies - how a stay's base fee is derived from its duration
2. Payment Strategies - how a fee is collected (credit card, UPI, wallet)

Each strategy is independently testable and can be swapped per zone
(pricing) or per deployment (payment) without touching the allocator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
from datetime import datetime, time, timedelta
from decimal import Decimal
import logging
import random
import threading

from .models import Money, PaymentMethod


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    Produces the base fee of a stay before vehicle adjustments
    """

    @abstractmethod
    def calculate(self, duration: timedelta, entry_time: datetime) -> Decimal:
        """Base fee for a stay of the given duration that started at entry_time"""
        pass

    def get_strategy_name(self) -> str:
        return self.__class__.__name__

    def __str__(self) -> str:
        return self.get_strategy_name()


@dataclass(frozen=True)
class DynamicPricingRule(PricingStrategy):
    """
    Hourly pricing with a peak multiplier and a daily cap

    - Peak applies when the stay *starts* inside [peak_start, peak_end)
    - Fee is billed on whole elapsed minutes
    - The fee never exceeds (whole days + 1) * daily_rate
    """
    hourly_rate: Decimal = Decimal("2.50")
    peak_multiplier: Decimal = Decimal("1.5")
    daily_rate: Decimal = Decimal("20.00")
    peak_start: time = time(8, 0)
    peak_end: time = time(18, 0)

    def __post_init__(self):
        for name in ("hourly_rate", "peak_multiplier", "daily_rate"):
            value = Decimal(str(getattr(self, name)))
            if value < Decimal("0"):
                raise ValueError(f"{name} cannot be negative")
            object.__setattr__(self, name, value)
        if self.peak_end <= self.peak_start:
            raise ValueError("Peak window must end after it starts")

    def is_peak(self, moment: datetime) -> bool:
        return self.peak_start <= moment.time() < self.peak_end

    def calculate(self, duration: timedelta, entry_time: datetime) -> Decimal:
        total_minutes = int(duration.total_seconds() // 60)
        if total_minutes <= 0:
            return Decimal("0")

        hours = Decimal(total_minutes) / Decimal(60)
        rate = self.hourly_rate
        if self.is_peak(entry_time):
            rate = rate * self.peak_multiplier

        fee = hours * rate
        days = total_minutes // (24 * 60)
        cap = Decimal(days + 1) * self.daily_rate
        return min(fee, cap)

    def __str__(self) -> str:
        return (
            f"${self.hourly_rate}/hr, peak x{self.peak_multiplier} "
            f"({self.peak_start:%H:%M}-{self.peak_end:%H:%M}), ${self.daily_rate}/day max"
        )


# ============================================================================
# PAYMENT STRATEGIES
# ============================================================================

class PaymentProcessor(ABC):
    """
    Abstract base class for payment strategies
    process_payment returns True on success and False on decline
    """

    method: PaymentMethod

    def __init__(self, rng: Optional[random.Random] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self._rng = rng or random.Random()

    @abstractmethod
    def process_payment(self, amount: Money) -> bool:
        pass

    @property
    def name(self) -> str:
        return self.method.name.replace("_", " ").title()


class SimulatedGatewayProcessor(PaymentProcessor):
    """Gateway stand-in that approves a fixed share of charges"""

    success_rate: float = 1.0

    def process_payment(self, amount: Money) -> bool:
        self.logger.info(f"Processing {self.name} payment of {amount}")
        approved = self._rng.random() < self.success_rate
        if approved:
            self.logger.info(f"{self.name} payment of {amount} approved")
        else:
            self.logger.warning(f"{self.name} payment of {amount} declined")
        return approved


class CreditCardProcessor(SimulatedGatewayProcessor):
    method = PaymentMethod.CREDIT_CARD
    success_rate = 0.90


class UPIProcessor(SimulatedGatewayProcessor):
    method = PaymentMethod.UPI
    success_rate = 0.95


class WalletProcessor(PaymentProcessor):
    """Prepaid wallet: succeeds while the balance covers the charge"""

    method = PaymentMethod.WALLET

    def __init__(self, balance: Decimal = Decimal("0"), rng: Optional[random.Random] = None):
        super().__init__(rng)
        self._balance = Money(balance)
        self._lock = threading.Lock()

    @property
    def balance(self) -> Money:
        return self._balance

    def top_up(self, amount: Money) -> Money:
        with self._lock:
            self._balance = self._balance + amount
            return self._balance

    def process_payment(self, amount: Money) -> bool:
        with self._lock:
            if amount.amount > self._balance.amount:
                self.logger.warning(f"Wallet balance {self._balance} cannot cover {amount}")
                return False
            self._balance = Money(self._balance.amount - amount.amount, self._balance.currency)
        self.logger.info(f"Wallet charged {amount}, remaining {self._balance}")
        return True
