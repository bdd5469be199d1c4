from __future__ import annotations


class ConsentError(Exception):
    """Base class for business-rule failures raised by the consent engine.

    Each subclass is one stable error kind; callers match on the class (or its
    ``code``), never on the message text.
    """

    code = "CONSENT_ERROR"
    default_message = "The consent operation failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConsentNotFound(ConsentError):
    code = "NOT_FOUND"
    default_message = "A consent with the informed id was not found."


class AccessDenied(ConsentError):
    code = "ACCESS_DENIED"
    default_message = "Access to the consent is not allowed."


class MissingPermissions(AccessDenied):
    default_message = "The consent is missing permissions."


class InvalidStatusTransition(ConsentError):
    code = "INVALID_STATUS_TRANSITION"
    default_message = "The consent is not in a valid status for this operation."


class ConsentNotAuthorised(InvalidStatusTransition):
    default_message = "The consent is not authorised."


class AlreadyRejected(ConsentError):
    code = "ALREADY_REJECTED"
    default_message = "The consent is already rejected."


class ExtensionNotAllowed(ConsentError):
    code = "EXTENSION_NOT_ALLOWED"
    default_message = "The consent is not allowed to be extended."


class ConsentNotAuthorisedForExtension(ExtensionNotAllowed):
    default_message = "The consent is not in the AUTHORISED status."


class ExtensionNotAllowedJointAccount(ConsentError):
    code = "EXTENSION_NOT_ALLOWED_JOINT_ACCOUNT"
    default_message = "A consent created for a joint account cannot be extended."


class InvalidExpiration(ConsentError):
    code = "INVALID_EXPIRATION"
    default_message = "The expiration date time is invalid."


class InvalidPermission(ConsentError):
    code = "INVALID_PERMISSION"
    default_message = "The requested permission is invalid."


class InvalidPermissionCombination(ConsentError):
    code = "INVALID_PERMISSION_COMBINATION"
    default_message = "The requested permission groups are invalid."


class PersonalBusinessConflict(ConsentError):
    code = "PERSONAL_BUSINESS_CONFLICT"
    default_message = "Cannot request personal and business permissions together."


# Infrastructure failures, outside the ConsentError hierarchy.
class StoreError(Exception):
    pass


class ConcurrentModification(StoreError):
    def __init__(self, consent_id: str) -> None:
        self.consent_id = consent_id
        super().__init__(f"consent {consent_id} was modified concurrently")
