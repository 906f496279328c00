import pytest

from vaultsync.common.errors import ContextTooSmall, PathNotFound, SessionNotFound
from vaultsync.prompts import sessions as sessions_module
from vaultsync.prompts.budgeter import BARE_TEMPLATE
from vaultsync.prompts.sessions import (
    SessionRegistry, TiktokenSession, augment_prompt_with_file,
)
from vaultsync.sync.filestore import LocalFileStore


class WordSession:
    def __init__(self, context_length):
        self.context_length = context_length

    def tokenize(self, text):
        return text.split()

    def get_context_length(self):
        return self.context_length


class FakeEncoding:
    name = 'fake_base'

    def __init__(self):
        self.calls = []

    def encode(self, text, disallowed_special=None):
        self.calls.append(disallowed_special)
        return [ord(c) for c in text]


def test_registry_resolves_and_removes():
    registry = SessionRegistry()
    session = WordSession(100)
    session_id = registry.register(session, 'chat-1')

    assert session_id == 'chat-1'
    assert registry.resolve('chat-1') is session
    assert registry.list() == [{'id': 'chat-1', 'context_length': 100}]
    assert registry.remove('chat-1') is True
    assert registry.remove('chat-1') is False

    with pytest.raises(SessionNotFound) as exc:
        registry.resolve('chat-1')
    assert exc.value.session_id == 'chat-1'


def test_registry_generates_ids():
    registry = SessionRegistry()
    first = registry.register(WordSession(10))
    second = registry.register(WordSession(10))
    assert first != second
    assert len(registry) == 2


def test_tiktoken_session(monkeypatch):
    encoding = FakeEncoding()
    requested = []

    def fake_get_encoding(name):
        requested.append(name)
        return encoding

    monkeypatch.setattr(sessions_module.tiktoken, 'get_encoding', fake_get_encoding)

    session = TiktokenSession('cl100k_base', context_length=2048)

    assert requested == ['cl100k_base']
    assert session.tokenize('hi') == [104, 105]
    assert encoding.calls == [()]
    assert session.get_context_length() == 2048
    assert session.describe() == {
        'tokenizer': 'tiktoken', 'encoding': 'fake_base', 'context_length': 2048,
    }


def test_augment_prompt_with_file(tmp_path):
    (tmp_path / 'note.md').write_text('one two three four five six seven eight')
    store = LocalFileStore(str(tmp_path))

    full = augment_prompt_with_file(store, 'note.md', 'why', WordSession(100),
                                    template=BARE_TEMPLATE)
    assert full.cutoff_offset == len('one two three four five six seven eight')

    cut = augment_prompt_with_file(store, 'note.md', ' why', WordSession(4),
                                   template=BARE_TEMPLATE)
    assert cut.truncated
    assert cut.prompt.startswith('one two three')
    assert len(cut.prompt.split()) <= 4


def test_augment_errors_propagate(tmp_path):
    store = LocalFileStore(str(tmp_path))
    with pytest.raises(PathNotFound):
        augment_prompt_with_file(store, 'missing.md', 'q', WordSession(10))

    (tmp_path / 'a.md').write_text('content')
    with pytest.raises(ContextTooSmall):
        augment_prompt_with_file(store, 'a.md', 'a b c', WordSession(2))
