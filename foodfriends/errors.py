"""Exception taxonomy for the FoodFriends engine.

Reads fail soft: store adapters catch ``StoreUnavailableError`` and hand back
empty results. User-initiated writes let these errors reach the caller so the
UI can show an explicit alert.
"""

from __future__ import annotations


class FoodFriendsError(Exception):
    """Base class for all engine errors."""


class StoreUnavailableError(FoodFriendsError):
    """The document store could not be reached or rejected the query."""


class NotFoundError(FoodFriendsError):
    """A referenced document does not exist."""

    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class DuplicateRelationshipError(FoodFriendsError):
    """A relationship already exists between the two users."""


class RegistrationError(FoodFriendsError):
    """Account creation failed; ``code`` carries the auth provider's error code."""

    def __init__(self, message: str, code: str = ""):
        super().__init__(message)
        self.code = code
