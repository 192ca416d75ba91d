"""Deposit verification: chain lookup, recipient and depth checks, one-time credit.

Both verification routes drive the same state machine:

    pending    --not on chain-------> pending
    pending    --wrong recipient----> rejected
    pending    --too few blocks-----> confirming
    confirming --enough blocks------> verified (balance credited once)

The credited USD amount is always derived from the chain: the coins paid to
the accepted deposit address(es) times the price at block time. A submitter's
claimed amount is kept for display only.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from beanie import UpdateResponse
from beanie.operators import In, Set
from fastapi import status

from app.core.audit import log_event
from app.core.config import get_settings
from app.core.exceptions import AppError, BadRequestError
from app.core.logging import get_logger
from app.core.money import usd_to_cents_floor
from app.core.security import parse_object_id
from app.explorers.base import BlockExplorer, ExplorerError, confirmation_depth
from app.models.transaction import (
    CONFIRMING,
    OPEN_STATUSES,
    REJECTED,
    VERIFIED,
    Transaction,
)
from app.models.user import User
from app.services import crypto_addresses as crypto_addresses_service
from app.services import ledger as ledger_service
from app.services import transactions as transactions_service

log = get_logger(__name__)

# reason -> (code, http status) for POST /transactions/verify
REASON_CODES = {
    "not_found": ("TRANSACTION_NOT_FOUND", status.HTTP_404_NOT_FOUND),
    "user_not_found": ("USER_NOT_FOUND", status.HTTP_404_NOT_FOUND),
    "already_verified": ("ALREADY_VERIFIED", status.HTTP_400_BAD_REQUEST),
    "rejected": ("TRANSACTION_REJECTED", status.HTTP_400_BAD_REQUEST),
    "duplicate": ("DUPLICATE_TRANSACTION_HASH", status.HTTP_400_BAD_REQUEST),
    "unsupported_crypto": ("UNSUPPORTED_CRYPTO", status.HTTP_400_BAD_REQUEST),
    "not_on_chain": ("TX_NOT_FOUND_ON_CHAIN", status.HTTP_400_BAD_REQUEST),
    "unconfirmed": ("TX_UNCONFIRMED", status.HTTP_400_BAD_REQUEST),
    "insufficient_confirmations": ("TX_UNCONFIRMED", status.HTTP_400_BAD_REQUEST),
    "invalid_recipient": ("INVALID_RECIPIENT", status.HTTP_400_BAD_REQUEST),
    "amount_too_small": ("AMOUNT_TOO_SMALL", status.HTTP_400_BAD_REQUEST),
    "upstream": ("VERIFICATION_FAILED", status.HTTP_500_INTERNAL_SERVER_ERROR),
}

# Code vocabulary of POST /transactions/verify-auto, where it differs
AUTO_REASON_CODES = {
    "already_verified": "DUPLICATE_TRANSACTION",
    "rejected": "DUPLICATE_TRANSACTION",
    "duplicate": "DUPLICATE_TRANSACTION",
    "not_on_chain": "TX_NOT_FOUND",
    "unconfirmed": "UNCONFIRMED",
    "insufficient_confirmations": "INSUFFICIENT_CONFIRMATIONS",
}


class VerificationError(AppError):
    def __init__(self, reason: str, message: str, details: dict | None = None):
        code, status_code = REASON_CODES[reason]
        super().__init__(message, code=code, status_code=status_code, details=details)
        self.reason = reason


@dataclass
class VerificationResult:
    transaction: Transaction
    credited_cents: int
    balance_after_cents: int


async def verify_transaction(
    transaction_id: str | None,
    explorers: dict[str, BlockExplorer],
) -> VerificationResult:
    """Verify a stored transaction by id and credit it."""
    if not transaction_id:
        raise BadRequestError("Transaction ID is required", code="MISSING_TRANSACTION_ID")
    tx_id = parse_object_id(transaction_id, code="INVALID_TRANSACTION_ID", message="Valid transaction ID is required")
    tx = await Transaction.get(tx_id)
    if not tx:
        raise VerificationError("not_found", "Transaction not found")
    return await _verify(tx, explorers)


async def verify_by_hash(
    user_id: str | None,
    cryptocurrency: str | None,
    transaction_hash: str | None,
    target_address: str | None,
    explorers: dict[str, BlockExplorer],
) -> VerificationResult:
    """
    Submit-and-verify in one call, paying a known deposit address.
    Re-submitting an unverified hash for the same user resumes it, so clients can poll.
    """
    if not transaction_hash or not transaction_hash.strip():
        raise BadRequestError("transactionHash is required", code="MISSING_TRANSACTION_HASH")
    if not cryptocurrency:
        raise BadRequestError("cryptocurrency is required", code="MISSING_CRYPTOCURRENCY")
    if not user_id:
        raise BadRequestError("userId is required", code="MISSING_USER_ID")
    if not target_address or not target_address.strip():
        raise BadRequestError("targetAddress is required", code="MISSING_TARGET_ADDRESS")
    transaction_hash = transaction_hash.strip()
    target_address = target_address.strip()
    cryptocurrency = cryptocurrency.strip().lower()
    if cryptocurrency not in explorers:
        raise VerificationError("unsupported_crypto", f"Verification is not available for {cryptocurrency}")

    uid = parse_object_id(user_id, code="INVALID_USER_ID", message="Valid userId is required")
    if not await User.get(uid):
        raise VerificationError("user_not_found", "User not found")

    try:
        tx = await transactions_service.create_pending(uid, cryptocurrency, transaction_hash)
    except transactions_service.DuplicateTransactionError:
        tx = await Transaction.find_one(Transaction.transaction_hash == transaction_hash)
        resumable = (
            tx is not None
            and tx.user_id == uid
            and tx.cryptocurrency == cryptocurrency
            and tx.status in OPEN_STATUSES
        )
        if not resumable:
            raise VerificationError("duplicate", "Transaction has already been submitted") from None
    return await _verify(tx, explorers, target_address=target_address)


async def _verify(
    tx: Transaction,
    explorers: dict[str, BlockExplorer],
    target_address: str | None = None,
) -> VerificationResult:
    if tx.status == VERIFIED:
        raise VerificationError("already_verified", "Transaction already verified and credited")
    if tx.status == REJECTED:
        raise VerificationError("rejected", "Transaction was rejected", details={"reason": tx.rejection_reason})
    explorer = explorers.get(tx.cryptocurrency)
    if explorer is None:
        raise VerificationError("unsupported_crypto", f"Verification is not available for {tx.cryptocurrency}")

    accepted = await crypto_addresses_service.active_addresses(tx.cryptocurrency)
    if target_address is not None:
        if target_address not in accepted:
            raise VerificationError(
                "invalid_recipient",
                "The target address is not one of our active deposit addresses",
            )
        accepted = {target_address}

    required = get_settings().min_confirmations
    try:
        chain_tx = await explorer.get_transaction(tx.transaction_hash)
        if chain_tx is None:
            raise VerificationError(
                "not_on_chain",
                "The transaction could not be found on the blockchain. Please make sure it was broadcast.",
            )

        paid = chain_tx.value_to(accepted)
        if paid <= 0:
            await _reject(tx, "recipient_mismatch")
            raise VerificationError(
                "invalid_recipient",
                "The transaction was not sent to one of our deposit addresses.",
            )

        depth = 0
        if chain_tx.confirmed:
            depth = confirmation_depth(chain_tx, await explorer.get_tip_height())
        if depth < required:
            await _mark_confirming(tx, depth, required)
            reason = "unconfirmed" if depth == 0 else "insufficient_confirmations"
            raise VerificationError(
                reason,
                f"Waiting for confirmations: {depth} of {required}. Please try again shortly.",
                details={"confirmations": depth, "required": required},
            )

        price = await explorer.get_historical_price_usd(chain_tx.block_time or int(datetime.utcnow().timestamp()))
    except ExplorerError as e:
        log.warning("explorer_failed", transaction_id=str(tx.id), error=str(e))
        raise VerificationError(
            "upstream",
            "We could not verify your transaction at this time. Please try again later.",
        ) from e

    if price <= 0:
        log.warning("explorer_price_unavailable", transaction_id=str(tx.id))
        raise VerificationError("upstream", "Price data is unavailable. Please try again later.")

    coin_amount = explorer.to_coin(paid)
    credited_cents = usd_to_cents_floor(coin_amount * price)
    if credited_cents <= 0:
        await _reject(tx, "amount_too_small")
        raise VerificationError("amount_too_small", "The deposit is worth less than one cent")

    matched = chain_tx.paid_addresses(accepted)
    return await _credit(tx, credited_cents, coin_amount, matched[0], depth, required)


async def _reject(tx: Transaction, reason: str) -> None:
    rejected = await Transaction.find_one(
        Transaction.id == tx.id,
        In(Transaction.status, list(OPEN_STATUSES)),
    ).update(
        Set({
            Transaction.status: REJECTED,
            Transaction.rejection_reason: reason,
            Transaction.updated_at: datetime.utcnow(),
        }),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if rejected is None:
        return
    log.info("deposit_rejected", transaction_id=str(tx.id), reason=reason)
    await log_event(str(tx.user_id), "deposit_rejected", "transaction", str(tx.id), {"reason": reason})


async def _mark_confirming(tx: Transaction, depth: int, required: int) -> None:
    await Transaction.find_one(
        Transaction.id == tx.id,
        In(Transaction.status, list(OPEN_STATUSES)),
    ).update(
        Set({
            Transaction.status: CONFIRMING,
            Transaction.confirmations: depth,
            Transaction.required_confirmations: required,
            Transaction.updated_at: datetime.utcnow(),
        })
    )
    log.info(
        "deposit_waiting_confirmations",
        transaction_id=str(tx.id),
        confirmations=depth,
        required=required,
    )


async def _credit(
    tx: Transaction,
    credited_cents: int,
    coin_amount: Decimal,
    deposit_address: str,
    depth: int,
    required: int,
) -> VerificationResult:
    """Claim the transaction with one conditional update, then credit the balance with one $inc."""
    now = datetime.utcnow()
    claimed = await Transaction.find_one(
        Transaction.id == tx.id,
        In(Transaction.status, list(OPEN_STATUSES)),
    ).update(
        Set({
            Transaction.status: VERIFIED,
            Transaction.verified_at: now,
            Transaction.amount_cents: credited_cents,
            Transaction.crypto_amount: f"{coin_amount:f}",
            Transaction.deposit_address: deposit_address,
            Transaction.confirmations: depth,
            Transaction.required_confirmations: required,
            Transaction.updated_at: now,
        }),
        response_type=UpdateResponse.NEW_DOCUMENT,
    )
    if claimed is None:
        current = await Transaction.get(tx.id)
        if current is not None and current.status == REJECTED:
            raise VerificationError("rejected", "Transaction was rejected")
        raise VerificationError("already_verified", "Transaction already verified and credited")

    try:
        _, balance_after = await ledger_service.apply_ledger_entry(
            tx.user_id,
            credited_cents,
            "deposit",
            reference_type="transaction",
            reference_id=str(tx.id),
            idempotency_key=f"deposit_{tx.transaction_hash}",
        )
    except Exception:
        # Transaction is verified but the balance was not credited
        log.error(
            "ledger_credit_failed",
            transaction_id=str(tx.id),
            user_id=str(tx.user_id),
            amount_cents=credited_cents,
        )
        raise

    log.info(
        "deposit_verified",
        transaction_id=str(tx.id),
        user_id=str(tx.user_id),
        amount_cents=credited_cents,
        confirmations=depth,
    )
    await log_event(
        str(tx.user_id),
        "deposit_credited",
        "transaction",
        str(tx.id),
        {"amount_cents": credited_cents, "crypto_amount": f"{coin_amount:f}", "balance_after_cents": balance_after},
    )
    return VerificationResult(claimed, credited_cents, balance_after)


def remap_for_auto(exc: VerificationError) -> VerificationError:
    """Translate a verification error into the verify-auto code vocabulary."""
    exc.code = AUTO_REASON_CODES.get(exc.reason, exc.code)
    return exc
