"""
TTG Exceptions

Custom exception classes for the TTG protocol. Every failure is a rejected
operation: the ledger transaction that raised it is rolled back in full.
"""


class TTGException(Exception):
    """Base exception for TTG."""
    pass


class ConfigurationError(TTGException):
    """Configuration error."""
    pass


class Unauthorized(TTGException):
    """Caller lacks the governor / registry / minter privilege."""

    def __init__(self, caller: str, action: str = ""):
        self.caller = caller
        self.action = action
        suffix = f" to {action}" if action else ""
        super().__init__(f"{caller} is not authorized{suffix}")


class ReentrantCall(TTGException):
    """Entry point invoked again before its previous invocation returned."""
    pass


# ── Tokens ────────────────────────────────────────────────────────────

class TokenError(TTGException):
    """Base exception for token operations."""
    pass


class InsufficientBalance(TokenError):
    pass


class InsufficientAllowance(TokenError):
    pass


class TransferFailed(TokenError):
    """A token reported failure (returned False) for a transfer."""
    pass


class FutureLookup(TokenError):
    """Checkpoint queried for a timepoint that is not yet in the past."""
    pass


# ── Signatures (ERC712) ───────────────────────────────────────────────

class SignatureError(TTGException):
    """Base exception for signed authorizations."""
    pass


class SignatureExpired(SignatureError):
    def __init__(self, deadline: int, timestamp: int):
        self.deadline = deadline
        self.timestamp = timestamp
        super().__init__(f"Signature expired at {deadline} (now {timestamp})")


class InvalidSignature(SignatureError):
    pass


class MalleableSignature(SignatureError):
    """Signature uses the non-canonical (high-s) encoding."""
    pass


class ReusedNonce(SignatureError):
    def __init__(self, nonce: int, current_nonce: int):
        self.nonce = nonce
        self.current_nonce = current_nonce
        super().__init__(f"Nonce {nonce} is not the current nonce {current_nonce}")


class SignerMismatch(SignatureError):
    def __init__(self, account: str, signer: str):
        self.account = account
        self.signer = signer
        super().__init__(f"Recovered signer {signer} does not match {account}")


# ── Registry ──────────────────────────────────────────────────────────

class RegistryError(TTGException):
    pass


# ── Governance ────────────────────────────────────────────────────────

class GovernanceError(TTGException):
    """Base governance exception."""
    pass


class InvalidMutation(GovernanceError):
    """Proposal target mutation is malformed."""
    pass


class ProposalNotFound(GovernanceError):
    pass


class ProposalLifecycleError(GovernanceError):
    """Raised on illegal state transitions."""
    pass


class InsufficientFee(GovernanceError):
    """Fee payment does not equal the current proposal fee."""

    def __init__(self, payment: int, required: int):
        self.payment = payment
        self.required = required
        super().__init__(f"Fee payment {payment} != current proposal fee {required}")


class FeeMismatch(InsufficientFee):
    """Fee payment exceeds the current proposal fee (no change is given)."""
    pass


class QuorumNotMet(GovernanceError):
    pass


class NoVotingPower(GovernanceError):
    pass


class VotingWindowError(GovernanceError):
    pass


class VotingWindowNotOpen(VotingWindowError):
    pass


class VotingWindowClosed(VotingWindowError):
    pass


class VotingWindowOpen(VotingWindowError):
    """Resolution attempted before the voting window elapsed."""
    pass


class AlreadyResolved(GovernanceError):
    pass


class ResetWhileActive(GovernanceError):
    """Registry reset attempted while other proposals are in flight."""
    pass


# ── Auction ───────────────────────────────────────────────────────────

class AuctionError(TTGException):
    pass


class AuctionNotOpen(AuctionError):
    pass


class AuctionAlreadySettled(AuctionError):
    pass


class AuctionPriceNotMet(AuctionError):
    def __init__(self, offered: int, price: int):
        self.offered = offered
        self.price = price
        super().__init__(f"Offered {offered} < current price {price}")


class NothingToAuction(AuctionError):
    pass
