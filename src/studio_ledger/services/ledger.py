"""Coin ledger: balances, reservations, charges and releases.

Every balance mutation is a single conditional UPDATE executed in the same
transaction as the job status change it accompanies, so check-then-write is
never split across round trips:

- reserve:  job ``pending|draft|failed -> reserved``,
            ``reserved += cost WHERE balance - reserved >= cost``
- charge:   job ``reserved|submitted|generating -> done``,
            ``balance -= cost, reserved -= cost``
- release:  job ``reserved|submitted|generating -> failed``,
            ``reserved -= cost``

Charge and release are guarded by the job's status, so duplicate provider
callbacks or concurrent pollers apply the balance change at most once.

The ledger never calls a generation provider. Callers take the reservation
first, call the provider outside any ledger transaction, then charge or
release.
"""

from collections.abc import Generator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Update, select
from sqlalchemy import update as sa_update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from studio_ledger.db.models import (
    RehearsalModel,
    TokenTransactionModel,
    UserBalanceModel,
    VideoSegmentModel,
)
from studio_ledger.domain.enums import JobKind, JobStatus, TransactionType
from studio_ledger.domain.errors import (
    AlreadyTerminalError,
    InsufficientFundsError,
    JobNotFoundError,
    LedgerConsistencyError,
)
from studio_ledger.domain.models import BalanceSnapshot, Charged, Released, Reservation
from studio_ledger.domain.state_machine import RESERVABLE, RESERVATION_HOLDING, sources_for
from studio_ledger.logging import get_logger

logger = get_logger(__name__)

JobModel = VideoSegmentModel | RehearsalModel

JOB_MODELS: dict[JobKind, type[VideoSegmentModel] | type[RehearsalModel]] = {
    JobKind.SEGMENT: VideoSegmentModel,
    JobKind.REHEARSAL: RehearsalModel,
}


def job_model_for(kind: JobKind | str) -> type[VideoSegmentModel] | type[RehearsalModel]:
    """ORM model class for a job kind."""
    return JOB_MODELS[JobKind(kind)]


def update(model: type[Any]) -> Update:
    """Bulk UPDATE whose rowcount is the number of rows the WHERE clause matched."""
    return sa_update(model).execution_options(synchronize_session=False)


@contextmanager
def atomic(session: Session) -> Generator[None, None, None]:
    """Commit the enclosed work as one transaction, rolling back on any error."""
    try:
        yield
        session.commit()
    except Exception:
        session.rollback()
        raise


# =============================================================================
# Balances
# =============================================================================


def _snapshot(row: UserBalanceModel) -> BalanceSnapshot:
    return BalanceSnapshot(
        user_id=row.user_id,
        balance=row.balance,
        reserved=row.reserved,
        total_purchased=row.total_purchased,
        total_consumed=row.total_consumed,
    )


def _load_balance(session: Session, user_id: str) -> UserBalanceModel | None:
    return session.execute(
        select(UserBalanceModel)
        .where(UserBalanceModel.user_id == user_id)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def _require_balance_row(session: Session, user_id: str) -> UserBalanceModel:
    row = _load_balance(session, user_id)
    if row is None:
        raise LedgerConsistencyError(f"Balance row for {user_id} disappeared mid-transaction")
    return row


def _ensure_balance_row(session: Session, user_id: str) -> None:
    """Create a zero balance row for ``user_id`` if none exists yet."""
    if _load_balance(session, user_id) is not None:
        return
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        insert = postgresql_insert
    elif dialect == "sqlite":
        insert = sqlite_insert
    else:
        session.add(
            UserBalanceModel(
                user_id=user_id, balance=0, reserved=0, total_purchased=0, total_consumed=0
            )
        )
        session.flush()
        return

    # A concurrent request may create the row first
    session.execute(
        insert(UserBalanceModel)
        .values(
            id=uuid4(),
            user_id=user_id,
            balance=0,
            reserved=0,
            total_purchased=0,
            total_consumed=0,
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )


def _record(
    session: Session,
    user_id: str,
    tx_type: TransactionType,
    amount: int,
    balance_after: int,
    description: str | None = None,
    reservation: Reservation | None = None,
    metadata: dict[str, Any] | None = None,
) -> None:
    session.add(
        TokenTransactionModel(
            user_id=user_id,
            type=str(tx_type),
            amount=amount,
            balance_after=balance_after,
            description=description,
            job_kind=str(reservation.job_kind) if reservation else None,
            job_id=reservation.job_id if reservation else None,
            metadata_=metadata,
        )
    )


def get_balance(session: Session, user_id: str) -> BalanceSnapshot:
    """Current balance of a user; a user without a row has nothing."""
    row = _load_balance(session, user_id)
    if row is None:
        return BalanceSnapshot(user_id=user_id)
    return _snapshot(row)


def open_account(session: Session, user_id: str) -> BalanceSnapshot:
    """Create a zero balance row for a user who has none yet."""
    with atomic(session):
        _ensure_balance_row(session, user_id)
    return get_balance(session, user_id)


def get_available_balance(session: Session, user_id: str) -> int:
    """Coins the user can spend or reserve right now (balance - reserved)."""
    return get_balance(session, user_id).available


def list_transactions(session: Session, user_id: str, limit: int = 50) -> list[TokenTransactionModel]:
    """Most recent audit entries of a user, newest first."""
    return list(
        session.execute(
            select(TokenTransactionModel)
            .where(TokenTransactionModel.user_id == user_id)
            .order_by(TokenTransactionModel.created_at.desc())
            .limit(limit)
        ).scalars()
    )


def add_coins(
    session: Session,
    user_id: str,
    amount: int,
    tx_type: TransactionType = TransactionType.PURCHASE,
    metadata: dict[str, Any] | None = None,
) -> BalanceSnapshot:
    """Credit coins to a user (purchase, bonus or admin grant).

    Creates the balance row on first credit.
    """
    if amount <= 0:
        raise ValueError(f"Credit amount must be positive, got {amount}")
    if tx_type not in (TransactionType.PURCHASE, TransactionType.BONUS):
        raise ValueError(f"Credits must be purchase or bonus, got {tx_type}")

    with atomic(session):
        _ensure_balance_row(session, user_id)
        values: dict[str, Any] = {"balance": UserBalanceModel.balance + amount}
        if tx_type == TransactionType.PURCHASE:
            values["total_purchased"] = UserBalanceModel.total_purchased + amount
        session.execute(
            update(UserBalanceModel).where(UserBalanceModel.user_id == user_id).values(**values)
        )
        row = _require_balance_row(session, user_id)
        snapshot = _snapshot(row)
        description = (
            f"Purchased {amount} coins"
            if tx_type == TransactionType.PURCHASE
            else f"Bonus {amount} coins"
        )
        _record(session, user_id, tx_type, amount, row.balance, description, metadata=metadata)

    logger.info(
        "coins_added",
        user_id=user_id,
        amount=amount,
        type=str(tx_type),
        balance=snapshot.balance,
    )
    return snapshot


def deduct(
    session: Session,
    user_id: str,
    amount: int,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> BalanceSnapshot:
    """Charge coins without a reservation, inside the caller's transaction.

    The caller commits or rolls back. Raises InsufficientFundsError when
    ``balance - reserved < amount``.
    """
    if amount < 0:
        raise ValueError(f"Deduction amount must not be negative, got {amount}")

    result = session.execute(
        update(UserBalanceModel)
        .where(
            UserBalanceModel.user_id == user_id,
            UserBalanceModel.balance - UserBalanceModel.reserved >= amount,
        )
        .values(
            balance=UserBalanceModel.balance - amount,
            total_consumed=UserBalanceModel.total_consumed + amount,
        )
    )
    if result.rowcount == 0:
        raise InsufficientFundsError(user_id, amount, get_available_balance(session, user_id))

    row = _require_balance_row(session, user_id)
    _record(
        session,
        user_id,
        TransactionType.CONSUME,
        -amount,
        row.balance,
        description or f"Consumed {amount} coins",
        metadata=metadata,
    )
    return _snapshot(row)


def direct_deduction(
    session: Session,
    user_id: str,
    amount: int,
    description: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> BalanceSnapshot:
    """Charge coins in one atomic step with no reservation phase."""
    with atomic(session):
        snapshot = deduct(session, user_id, amount, description, metadata)
    logger.info("coins_deducted", user_id=user_id, amount=amount, balance=snapshot.balance)
    return snapshot


# =============================================================================
# Reservations
# =============================================================================


def _claim_for_reservation(session: Session, kind: JobKind, job_id: UUID, cost: int) -> None:
    """Move a job into ``reserved``, or raise if it is not eligible."""
    model = job_model_for(kind)
    claimed = session.execute(
        update(model)
        .where(model.id == job_id, model.status.in_([str(s) for s in RESERVABLE[kind]]))
        .values(
            status=str(JobStatus.RESERVED),
            reserved_cost=cost,
            token_cost=None,
            provider_task_id=None,
            video_url=None,
            thumbnail_url=None,
            error_message=None,
            completed_at=None,
        )
    )
    if claimed.rowcount == 0:
        job = session.get(model, job_id)
        if job is None:
            raise JobNotFoundError(f"{kind} {job_id} not found")
        raise AlreadyTerminalError(job_id, job.status)


def reserve(
    session: Session,
    user_id: str,
    cost: int,
    job_kind: JobKind,
    job_id: UUID,
    description: str | None = None,
) -> Reservation:
    """Hold ``cost`` coins for a job and mark it ``reserved``.

    All-or-nothing: on failure neither the balance nor the job changes.

    Raises:
        InsufficientFundsError: Available balance is below ``cost``.
        AlreadyTerminalError: The job is not in a reservable state.
        JobNotFoundError: The job does not exist.
    """
    return reserve_batch(session, user_id, [(job_kind, job_id, cost)], description)[0]


def reserve_batch(
    session: Session,
    user_id: str,
    jobs: Sequence[tuple[JobKind, UUID, int]],
    description: str | None = None,
) -> list[Reservation]:
    """Reserve coins for several jobs at once, all or nothing.

    Args:
        session: Database session.
        user_id: Owner of the balance being reserved against.
        jobs: ``(job_kind, job_id, cost)`` per job.
        description: Audit description.

    Returns:
        One Reservation per job, in input order.
    """
    if any(cost < 0 for _, _, cost in jobs):
        raise ValueError("Reservation cost must not be negative")

    reservations = [
        Reservation(user_id=user_id, job_kind=JobKind(kind), job_id=job_id, amount=cost)
        for kind, job_id, cost in jobs
    ]
    total = sum(r.amount for r in reservations)

    with atomic(session):
        for reservation in reservations:
            _claim_for_reservation(
                session, reservation.job_kind, reservation.job_id, reservation.amount
            )

        _ensure_balance_row(session, user_id)
        held = session.execute(
            update(UserBalanceModel)
            .where(
                UserBalanceModel.user_id == user_id,
                UserBalanceModel.balance - UserBalanceModel.reserved >= total,
            )
            .values(reserved=UserBalanceModel.reserved + total)
        )
        if held.rowcount == 0:
            available = get_available_balance(session, user_id)
            logger.info(
                "reservation_rejected",
                user_id=user_id,
                required=total,
                available=available,
            )
            raise InsufficientFundsError(user_id, total, available)

        row = _require_balance_row(session, user_id)
        for reservation in reservations:
            _record(
                session,
                user_id,
                TransactionType.RESERVE,
                -reservation.amount,
                row.balance,
                description or f"Reserved {reservation.amount} coins",
                reservation=reservation,
            )

    logger.info(
        "coins_reserved",
        user_id=user_id,
        amount=total,
        jobs=[str(r.job_id) for r in reservations],
    )
    return reservations


def charge(
    session: Session,
    reservation: Reservation,
    video_url: str | None = None,
    thumbnail_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Charged:
    """Convert a reservation into a permanent charge and mark the job ``done``.

    Idempotent: if the job no longer holds this reservation the call changes
    nothing and returns ``Charged(applied=False)``.
    """
    model = job_model_for(reservation.job_kind)
    values: dict[str, Any] = {
        "status": str(JobStatus.DONE),
        "token_cost": reservation.amount,
        "reserved_cost": None,
        "error_message": None,
        "completed_at": datetime.now(UTC),
    }
    if video_url is not None:
        values["video_url"] = video_url
    if thumbnail_url is not None:
        values["thumbnail_url"] = thumbnail_url

    with atomic(session):
        finished = session.execute(
            update(model)
            .where(
                model.id == reservation.job_id,
                model.status.in_([str(s) for s in sources_for(JobStatus.DONE, reservation.job_kind)]),
                model.reserved_cost == reservation.amount,
            )
            .values(**values)
        )
        if finished.rowcount == 0:
            logger.info(
                "charge_skipped",
                job_kind=str(reservation.job_kind),
                job_id=str(reservation.job_id),
            )
            return Charged(reservation=reservation, applied=False)

        moved = session.execute(
            update(UserBalanceModel)
            .where(
                UserBalanceModel.user_id == reservation.user_id,
                UserBalanceModel.reserved >= reservation.amount,
                UserBalanceModel.balance >= reservation.amount,
            )
            .values(
                balance=UserBalanceModel.balance - reservation.amount,
                reserved=UserBalanceModel.reserved - reservation.amount,
                total_consumed=UserBalanceModel.total_consumed + reservation.amount,
            )
        )
        if moved.rowcount == 0:
            raise LedgerConsistencyError(
                f"Balance of {reservation.user_id} does not hold {reservation.amount} "
                f"reserved coins for {reservation.job_kind} {reservation.job_id}"
            )

        row = _require_balance_row(session, reservation.user_id)
        balance_after = row.balance
        _record(
            session,
            reservation.user_id,
            TransactionType.CONSUME,
            -reservation.amount,
            balance_after,
            f"Consumed {reservation.amount} coins",
            reservation=reservation,
            metadata=metadata,
        )

    logger.info(
        "reservation_charged",
        user_id=reservation.user_id,
        job_kind=str(reservation.job_kind),
        job_id=str(reservation.job_id),
        amount=reservation.amount,
        balance=balance_after,
    )
    return Charged(reservation=reservation, applied=True, balance_after=balance_after)


def release(
    session: Session,
    reservation: Reservation,
    error_message: str | None = None,
) -> Released:
    """Return reserved coins to the available balance and mark the job ``failed``.

    Idempotent: releasing a job that no longer holds this reservation changes
    nothing and returns ``Released(applied=False)``.
    """
    model = job_model_for(reservation.job_kind)

    with atomic(session):
        failed = session.execute(
            update(model)
            .where(
                model.id == reservation.job_id,
                model.status.in_(
                    [str(s) for s in sources_for(JobStatus.FAILED, reservation.job_kind)]
                ),
                model.reserved_cost == reservation.amount,
            )
            .values(
                status=str(JobStatus.FAILED),
                reserved_cost=None,
                token_cost=None,
                error_message=error_message,
            )
        )
        if failed.rowcount == 0:
            logger.info(
                "release_skipped",
                job_kind=str(reservation.job_kind),
                job_id=str(reservation.job_id),
            )
            return Released(reservation=reservation, applied=False)

        returned = session.execute(
            update(UserBalanceModel)
            .where(
                UserBalanceModel.user_id == reservation.user_id,
                UserBalanceModel.reserved >= reservation.amount,
            )
            .values(reserved=UserBalanceModel.reserved - reservation.amount)
        )
        if returned.rowcount == 0:
            raise LedgerConsistencyError(
                f"Balance of {reservation.user_id} does not hold {reservation.amount} "
                f"reserved coins for {reservation.job_kind} {reservation.job_id}"
            )

        row = _require_balance_row(session, reservation.user_id)
        balance_after = row.balance
        _record(
            session,
            reservation.user_id,
            TransactionType.RELEASE,
            reservation.amount,
            balance_after,
            f"Released {reservation.amount} reserved coins",
            reservation=reservation,
            metadata={"error": error_message} if error_message else None,
        )

    logger.info(
        "reservation_released",
        user_id=reservation.user_id,
        job_kind=str(reservation.job_kind),
        job_id=str(reservation.job_id),
        amount=reservation.amount,
        error=error_message,
    )
    return Released(reservation=reservation, applied=True, balance_after=balance_after)


def advance(
    session: Session,
    job_kind: JobKind,
    job_id: UUID,
    status: JobStatus,
    provider_task_id: str | None = None,
) -> bool:
    """Record provider progress (``submitted`` or ``generating``); no balance change.

    Returns:
        True if the job moved, False if it was not in a state that precedes
        ``status`` (e.g. it already finished).
    """
    status = JobStatus(status)
    if status not in (JobStatus.SUBMITTED, JobStatus.GENERATING):
        raise ValueError(f"advance() only records provider progress, not {status}")

    model = job_model_for(job_kind)
    values: dict[str, Any] = {"status": str(status)}
    if provider_task_id is not None:
        values["provider_task_id"] = provider_task_id

    with atomic(session):
        moved = session.execute(
            update(model)
            .where(
                model.id == job_id,
                model.status.in_([str(s) for s in sources_for(status, JobKind(job_kind))]),
            )
            .values(**values)
        )

    if moved.rowcount:
        logger.info("job_advanced", job_kind=str(job_kind), job_id=str(job_id), status=str(status))
    return bool(moved.rowcount)


def reservation_for(job: JobModel, user_id: str) -> Reservation | None:
    """Rebuild the outstanding reservation of a job row, if it holds one."""
    if JobStatus(job.status) not in RESERVATION_HOLDING or job.reserved_cost is None:
        return None
    kind = JobKind.REHEARSAL if isinstance(job, RehearsalModel) else JobKind.SEGMENT
    return Reservation(user_id=user_id, job_kind=kind, job_id=job.id, amount=job.reserved_cost)
