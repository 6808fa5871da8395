"""
Ledger service: the money rules for a seat and a pot

Pure calculation, no I/O. Every function takes a snapshot and returns a new
value; persisting it is the caller's job. The same functions drive both the
live commands (as pre-checks) and the event log replay, so the two can never
disagree about what is legal.

Amounts are whole currency units (int).
"""
from dataclasses import dataclass, replace
from typing import Iterable, Optional

from core.exceptions import (
    InvalidAmountError,
    LedgerInvariantViolation,
    PlayerAlreadyCashedOut,
    PlayerNotCashedOut,
)


@dataclass(frozen=True)
class Seat:
    """Immutable view of one participant's money"""
    player_id: str
    player_name: str
    total_buyin: int = 0
    cashout_amount: Optional[int] = None
    is_cashed_out: bool = False
    user_id: Optional[str] = None

    @classmethod
    def from_player(cls, player) -> "Seat":
        """Snapshot a GamePlayer row (or anything shaped like one)"""
        return cls(
            player_id=player.id,
            player_name=player.player_name,
            total_buyin=player.total_buyin,
            cashout_amount=player.cashout_amount,
            is_cashed_out=player.is_cashed_out,
            user_id=player.user_id,
        )


@dataclass(frozen=True)
class PotSummary:
    total_buyin: int
    total_cashed_out: int
    on_table: int
    seat_count: int
    active_count: int
    settled_count: int

    @property
    def all_settled(self) -> bool:
        return self.seat_count > 0 and self.active_count == 0

    @property
    def balanced(self) -> bool:
        """Conservation: once everyone has cashed out, nothing is left over"""
        return self.all_settled and self.on_table == 0

    def as_dict(self) -> dict:
        return {
            "total_buyin": self.total_buyin,
            "total_cashed_out": self.total_cashed_out,
            "on_table": self.on_table,
            "seat_count": self.seat_count,
            "active_count": self.active_count,
            "settled_count": self.settled_count,
            "all_settled": self.all_settled,
            "balanced": self.balanced,
        }


def _require_int(amount) -> None:
    # bool is an int subclass; True is not a buy-in
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmountError(amount, "must be a whole number")


def validate_buyin_amount(amount) -> int:
    """
    Check a rebuy / seating amount

    Raises:
        InvalidAmountError: amount is not an int or amount <= 0
    """
    _require_int(amount)
    if amount <= 0:
        raise InvalidAmountError(amount, "buy-in must be greater than zero")
    return amount


def validate_cashout_amount(amount) -> int:
    """
    Check a cashout amount (zero is a legitimate bust-out)

    Raises:
        InvalidAmountError: amount is not an int or amount < 0
    """
    _require_int(amount)
    if amount < 0:
        raise InvalidAmountError(amount, "cashout cannot be negative")
    return amount


def open_seat(player_id: str, player_name: str, buyin: int, user_id: Optional[str] = None) -> Seat:
    """
    Seat a new participant with an opening buy-in

    Joining with a default buy-in of 0 is allowed; later rebuys must be
    positive.
    """
    _require_int(buyin)
    if buyin < 0:
        raise InvalidAmountError(buyin, "opening buy-in cannot be negative")
    return Seat(
        player_id=player_id,
        player_name=player_name,
        total_buyin=buyin,
        user_id=user_id,
    )


def apply_buyin(seat: Seat, amount: int) -> Seat:
    """
    Add a rebuy to an active seat

    Raises:
        InvalidAmountError: amount <= 0
        PlayerAlreadyCashedOut: the seat has been settled
    """
    validate_buyin_amount(amount)
    if seat.is_cashed_out:
        raise PlayerAlreadyCashedOut(seat.player_id)
    return replace(seat, total_buyin=seat.total_buyin + amount)


def apply_cashout(seat: Seat, amount: int) -> Seat:
    """
    Settle a seat. Callable exactly once.

    Raises:
        InvalidAmountError: amount < 0
        PlayerAlreadyCashedOut: a cashout was already recorded; a correction
            must go through override_cashout instead
    """
    validate_cashout_amount(amount)
    if seat.is_cashed_out:
        raise PlayerAlreadyCashedOut(seat.player_id)
    return replace(seat, cashout_amount=amount, is_cashed_out=True)


def override_cashout(seat: Seat, amount: int) -> Seat:
    """
    Administrative correction of an already recorded cashout

    Raises:
        InvalidAmountError: amount < 0
        PlayerNotCashedOut: there is nothing to correct yet
    """
    validate_cashout_amount(amount)
    if not seat.is_cashed_out:
        raise PlayerNotCashedOut(seat.player_id)
    return replace(seat, cashout_amount=amount)


def net_for(seat) -> Optional[int]:
    """
    Settled result of a seat

    Returns None while the seat is still in play. None means "in progress",
    which is not the same thing as breaking even (0).
    """
    if not seat.is_cashed_out or seat.cashout_amount is None:
        return None
    return seat.cashout_amount - seat.total_buyin


def pot_summary(seats: Iterable) -> PotSummary:
    """
    Totals for live display and the end-of-game reconciliation check

    on_table = total buy-ins - total cashed out. It is non-zero while money
    is still in play, and it may stay non-zero after a game is ended early.
    """
    total_buyin = 0
    total_cashed_out = 0
    seat_count = 0
    settled = 0

    for seat in seats:
        seat_count += 1
        total_buyin += seat.total_buyin
        if seat.is_cashed_out:
            settled += 1
            total_cashed_out += seat.cashout_amount or 0

    return PotSummary(
        total_buyin=total_buyin,
        total_cashed_out=total_cashed_out,
        on_table=total_buyin - total_cashed_out,
        seat_count=seat_count,
        active_count=seat_count - settled,
        settled_count=settled,
    )


def check_seat_invariants(seat) -> None:
    """
    Raises LedgerInvariantViolation if the seat breaks a ledger rule:
    - total_buyin >= 0
    - not cashed out => cashout_amount is None
    - cashed out => cashout_amount >= 0
    """
    if seat.total_buyin < 0:
        raise LedgerInvariantViolation(
            f"Seat {seat.player_id} has negative total_buyin {seat.total_buyin}"
        )
    if not seat.is_cashed_out and seat.cashout_amount is not None:
        raise LedgerInvariantViolation(
            f"Seat {seat.player_id} has a cashout amount but is not cashed out"
        )
    if seat.is_cashed_out and (seat.cashout_amount is None or seat.cashout_amount < 0):
        raise LedgerInvariantViolation(
            f"Seat {seat.player_id} is cashed out with invalid amount {seat.cashout_amount}"
        )
