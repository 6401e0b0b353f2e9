"""Exceptions raised by chatmem."""


class ChatMemError(Exception):
    """Base exception for chatmem."""


class MissingIdentityError(ChatMemError, ValueError):
    """A memory operation was called without a user (or chat) identity."""


class CollaboratorError(ChatMemError):
    """An external collaborator (embedding, vector store, LLM) failed."""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


def require_identity(user_id: str | None, chat_id: str | None = None, *, need_chat: bool = False) -> None:
    """Raise MissingIdentityError unless the ids needed by an operation are present."""
    if not user_id or not str(user_id).strip():
        raise MissingIdentityError("user_id is required for memory operations")
    if need_chat and (not chat_id or not str(chat_id).strip()):
        raise MissingIdentityError("chat_id is required for this memory operation")
