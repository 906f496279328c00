"""
vaultsync Prompts Module - token-bounded prompt assembly

Usage:
    from vaultsync.prompts import TiktokenSession, augment_prompt_with_file

    session = TiktokenSession(context_length=8192)
    result = augment_prompt_with_file(filestore, 'notes/long.md', 'Summarize', session)
"""

from .budgeter import (
    PromptTemplate, PromptWithContextLimit, DEFAULT_TEMPLATE, BARE_TEMPLATE,
    build_bounded_prompt, count_tokens,
)
from .sessions import (
    TokenizerSession, TiktokenSession, SessionRegistry, augment_prompt_with_file,
)

__all__ = [
    'PromptTemplate', 'PromptWithContextLimit', 'DEFAULT_TEMPLATE', 'BARE_TEMPLATE',
    'build_bounded_prompt', 'count_tokens',
    'TokenizerSession', 'TiktokenSession', 'SessionRegistry', 'augment_prompt_with_file',
]
