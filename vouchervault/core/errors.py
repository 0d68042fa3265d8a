"""
Typed failures raised by the services.

Every error carries a human readable message (shown to the end user), a
stable ``code`` for clients and a ``kind`` that the API layer maps to an
HTTP status:

- validation     bad input shape or range, rejected before any store access
- conflict       invariant violation against the current stored state
- authorization  the actor lacks the required relationship
- not_found      the referenced entity is absent
- transient      the store is unavailable, safe for the caller to retry
"""

from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    CONFLICT = "conflict"
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


class VaultError(Exception):
    """Base class for every business failure."""

    kind: ErrorKind = ErrorKind.VALIDATION
    code: str = "error"
    default_message: str = "Request failed"

    def __init__(self, message: str = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


# ----- validation -----

class ValidationFailed(VaultError):
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidAmount(VaultError):
    code = "invalid_amount"
    default_message = "Amount must be a positive number"


class InvalidReference(VaultError):
    code = "invalid_reference"
    default_message = "Referenced family does not exist or you are not a member"


class IncorrectPassword(VaultError):
    code = "incorrect_password"
    default_message = "Current password is incorrect"


# ----- conflict -----

class DuplicateCode(VaultError):
    kind = ErrorKind.CONFLICT
    code = "duplicate_code"
    default_message = "Redemption codes must be unique within a voucher"


class InsufficientBalance(VaultError):
    kind = ErrorKind.CONFLICT
    code = "insufficient_balance"
    default_message = "Amount exceeds balance"


class CodeUnavailable(VaultError):
    kind = ErrorKind.CONFLICT
    code = "code_unavailable"
    default_message = "Code has already been used"


class DuplicatePendingInvite(VaultError):
    kind = ErrorKind.CONFLICT
    code = "duplicate_invite"
    default_message = "Duplicate invite pending for this email"


class InviteAlreadyResolved(VaultError):
    kind = ErrorKind.CONFLICT
    code = "invite_resolved"
    default_message = "Invite already answered"


class AlreadyMember(VaultError):
    kind = ErrorKind.CONFLICT
    code = "already_member"
    default_message = "User is already a member of this family"


class OwnerCannotLeave(VaultError):
    kind = ErrorKind.CONFLICT
    code = "owner_cannot_leave"
    default_message = "The owner cannot leave the family, delete it instead"


class EmailTaken(VaultError):
    kind = ErrorKind.CONFLICT
    code = "email_taken"
    default_message = "Email already registered"


# ----- authorization -----

class Unauthorized(VaultError):
    kind = ErrorKind.AUTHORIZATION
    code = "no_access"
    default_message = "You do not have access to this voucher"


class Forbidden(VaultError):
    kind = ErrorKind.AUTHORIZATION
    code = "not_owner"
    default_message = "Not the owner"


class EmailMismatch(VaultError):
    kind = ErrorKind.AUTHORIZATION
    code = "email_mismatch"
    default_message = "This invite was sent to a different email address"


# ----- not found -----

class NotFound(VaultError):
    kind = ErrorKind.NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class VoucherNotFound(NotFound):
    code = "voucher_not_found"
    default_message = "Voucher not found"


class FamilyNotFound(NotFound):
    code = "family_not_found"
    default_message = "Family not found"


class InviteNotFound(NotFound):
    code = "invite_not_found"
    default_message = "Invite not found"


class MemberNotFound(NotFound):
    code = "member_not_found"
    default_message = "Member not found"


# ----- transient -----

class StoreUnavailable(VaultError):
    kind = ErrorKind.TRANSIENT
    code = "store_unavailable"
    default_message = "Storage is temporarily unavailable, please retry"
