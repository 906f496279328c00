"""
Context Budgeter - fit file content plus a user prompt into a token budget

The user prompt is always kept whole. File content is cut to the longest
prefix whose assembled prompt still tokenizes within the budget, and the
character offset of the cut is returned alongside the prompt.

Tokenizers are not guaranteed to be prefix-stable (a longer prefix can
tokenize shorter), so every candidate is checked against the fully
assembled prompt. The binary search keeps a fitting lower bound and a
non-fitting upper bound, so the answer is always a length that was
actually measured to fit and whose successor was measured not to.

Usage:
    result = build_bounded_prompt(content, "Summarize this", session.tokenize,
                                  session.get_context_length())
    result.prompt, result.cutoff_offset
"""

from dataclasses import dataclass, asdict
from typing import Callable, Sequence

from vaultsync.common.errors import ContextTooSmall

Tokenizer = Callable[[str], Sequence]


@dataclass(frozen=True)
class PromptTemplate:
    prefix: str = ''
    separator: str = ''
    suffix: str = ''
    truncation_note: str = ''

    def assemble(self, content: str, user_prompt: str, truncated: bool = False) -> str:
        if not content and not truncated:
            return f"{user_prompt}{self.suffix}"
        note = self.truncation_note if truncated else ''
        return f"{self.prefix}{content}{note}{self.separator}{user_prompt}{self.suffix}"


DEFAULT_TEMPLATE = PromptTemplate(
    prefix='Based on the following file content:\n\n',
    separator='\n\n',
    suffix='',
    truncation_note='\n... (truncated)',
)

# Plain concatenation: content immediately followed by the prompt
BARE_TEMPLATE = PromptTemplate()


@dataclass
class PromptWithContextLimit:
    prompt: str
    cutoff_offset: int
    truncated: bool
    token_count: int
    token_budget: int

    def to_dict(self) -> dict:
        return asdict(self)


def count_tokens(tokenize: Tokenizer, text: str) -> int:
    return len(tokenize(text))


def build_bounded_prompt(raw_content: str, user_prompt: str, tokenize: Tokenizer,
                         context_length: int, template: PromptTemplate = DEFAULT_TEMPLATE,
                         reserve_tokens: int = 0) -> PromptWithContextLimit:
    """Combine file content and prompt within `context_length - reserve_tokens` tokens.

    Raises:
        ContextTooSmall: the prompt and framing alone exceed the budget.
    """
    budget = context_length - reserve_tokens

    full_prompt = template.assemble(raw_content, user_prompt)
    full_tokens = count_tokens(tokenize, full_prompt)
    if full_tokens <= budget:
        return PromptWithContextLimit(full_prompt, len(raw_content), False, full_tokens, budget)

    def measure(length: int):
        text = template.assemble(raw_content[:length], user_prompt, truncated=True)
        return text, count_tokens(tokenize, text)

    if not raw_content:
        raise ContextTooSmall(budget, full_tokens)

    # Zero content is the floor: framed if the framing fits, else the bare prompt
    floor_prompt, floor_tokens = measure(0)
    if floor_tokens > budget:
        floor_prompt = template.assemble('', user_prompt)
        floor_tokens = count_tokens(tokenize, floor_prompt)
        if floor_tokens > budget:
            raise ContextTooSmall(budget, floor_tokens)

    # fits(lo) and not fits(hi) hold throughout
    lo, hi = 0, len(raw_content)
    best_prompt, best_tokens = floor_prompt, floor_tokens
    while hi - lo > 1:
        mid = (lo + hi) // 2
        text, tokens = measure(mid)
        if tokens <= budget:
            lo, best_prompt, best_tokens = mid, text, tokens
        else:
            hi = mid

    return PromptWithContextLimit(best_prompt, lo, True, best_tokens, budget)
