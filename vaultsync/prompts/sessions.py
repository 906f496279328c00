"""
Tokenizer sessions and file-backed prompt augmentation.

A session is anything with `tokenize(text)` and `get_context_length()`.
The caller resolves the session (SessionRegistry.resolve) and hands it to
augment_prompt_with_file; nothing here looks sessions up on its own.
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional, Protocol, Sequence

import tiktoken

from vaultsync.common.errors import SessionNotFound
from .budgeter import (
    DEFAULT_TEMPLATE, PromptTemplate, PromptWithContextLimit, build_bounded_prompt,
)

logger = logging.getLogger(__name__)


class TokenizerSession(Protocol):

    def tokenize(self, text: str) -> Sequence:
        ...

    def get_context_length(self) -> int:
        ...


class TiktokenSession:
    """BPE tokenizer session backed by tiktoken."""

    def __init__(self, encoding_name: str = 'cl100k_base', context_length: int = 4096,
                 model: Optional[str] = None):
        if model:
            self.encoding = tiktoken.encoding_for_model(model)
        else:
            self.encoding = tiktoken.get_encoding(encoding_name)
        self.encoding_name = self.encoding.name
        self.context_length = context_length

    def tokenize(self, text: str) -> List[int]:
        # Special-token text in a vault file is content, not control
        return self.encoding.encode(text, disallowed_special=())

    def get_context_length(self) -> int:
        return self.context_length

    def describe(self) -> dict:
        return {
            'tokenizer': 'tiktoken',
            'encoding': self.encoding_name,
            'context_length': self.context_length,
        }


class SessionRegistry:
    """Thread-safe map of session id -> tokenizer session."""

    def __init__(self):
        self._sessions: Dict[str, TokenizerSession] = {}
        self._lock = threading.Lock()

    def register(self, session: TokenizerSession, session_id: Optional[str] = None) -> str:
        session_id = session_id or uuid.uuid4().hex
        with self._lock:
            self._sessions[session_id] = session
        logger.info("registered session %s", session_id)
        return session_id

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def resolve(self, session_id: str) -> TokenizerSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def list(self) -> List[dict]:
        with self._lock:
            items = sorted(self._sessions.items())
        sessions = []
        for session_id, session in items:
            entry = {'id': session_id, 'context_length': session.get_context_length()}
            if hasattr(session, 'describe'):
                entry.update(session.describe())
            sessions.append(entry)
        return sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def augment_prompt_with_file(filestore, path: str, user_prompt: str,
                             session: TokenizerSession,
                             template: PromptTemplate = DEFAULT_TEMPLATE,
                             reserve_tokens: int = 0) -> PromptWithContextLimit:
    """Read a vault file and fit it with the prompt into the session's context.

    Raises:
        DiskError: the file could not be read.
        ContextTooSmall: the prompt alone does not fit.
    """
    content = filestore.read(path)
    result = build_bounded_prompt(
        content,
        user_prompt,
        session.tokenize,
        session.get_context_length(),
        template=template,
        reserve_tokens=reserve_tokens,
    )
    if result.truncated:
        logger.debug("%s cut at %d of %d chars for a %d token budget",
                     path, result.cutoff_offset, len(content), result.token_budget)
    return result
