from __future__ import annotations

VALIDATION = "validation"
AUTHORIZATION = "authorization"
STATE_CONFLICT = "state_conflict"
NOT_FOUND = "not_found"
TRANSIENT = "transient"


class GiftExchangeError(Exception):
    """Base for every failure a command can report to its caller."""

    category = TRANSIENT
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def code(self) -> str:
        return type(self).__name__


# --- validation ---

class ValidationFailed(GiftExchangeError):
    category = VALIDATION
    default_message = "Invalid input."


class EmptyMessage(ValidationFailed):
    default_message = "Message is required."


class BodyTooLong(ValidationFailed):
    default_message = "Message cannot exceed 150 characters."


class NoIds(ValidationFailed):
    default_message = "Message IDs are required."


# --- authorization ---

class NotAuthorized(GiftExchangeError):
    category = AUTHORIZATION
    default_message = "Not authorized."


class InvalidPassword(NotAuthorized):
    default_message = "Incorrect group password."


# --- state conflicts ---

class StateConflict(GiftExchangeError):
    category = STATE_CONFLICT
    default_message = "The group is not in a state that allows this."


class AlreadyFrozen(StateConflict):
    default_message = "Secret Santa assignments have already been made for this group."


class GroupFrozen(StateConflict):
    default_message = "This group is locked because assignments have been made."


class NotFrozen(StateConflict):
    default_message = "Assignments have not been made for this group yet."


class CapacityExceeded(StateConflict):
    default_message = "This group is full."


class DuplicateName(StateConflict):
    default_message = "That name is already taken in this group."


class Closed(StateConflict):
    default_message = "This group is not accepting new members."


class AlreadyMember(StateConflict):
    default_message = "You are already a member of this group."


class GroupNotEmpty(StateConflict):
    default_message = "Remove all members before deleting the group."


class NotEnoughMembers(StateConflict):
    default_message = "At least 3 members are needed to assign Secret Santas."


# --- not found ---

class NotFound(GiftExchangeError):
    category = NOT_FOUND
    default_message = "Not found."


# --- infrastructure ---

class TransientFailure(GiftExchangeError):
    category = TRANSIENT
