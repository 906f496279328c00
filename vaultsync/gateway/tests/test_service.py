import pytest

from vaultsync.common.config import VaultConfig
from vaultsync.common.errors import IndexUnavailable
from vaultsync.gateway import service
from vaultsync.gateway.service import create_app
from vaultsync.index.content_index import MemoryContentIndex
from vaultsync.prompts.sessions import SessionRegistry
from vaultsync.sync.filestore import LocalFileStore
from vaultsync.sync.orchestrator import SyncOrchestrator


class WordSession:
    def __init__(self, context_length):
        self.context_length = context_length

    def tokenize(self, text):
        return text.split()

    def get_context_length(self):
        return self.context_length


class SwitchableIndex(MemoryContentIndex):
    down = False

    def upsert(self, path, content):
        if self.down:
            raise IndexUnavailable('index offline')
        return super().upsert(path, content)


@pytest.fixture
def setup(tmp_path):
    index = SwitchableIndex()
    orch = SyncOrchestrator(LocalFileStore(str(tmp_path)), index)
    sessions = SessionRegistry()
    sessions.register(WordSession(50), 'default')
    app = create_app(orch, sessions, VaultConfig(vault_root=str(tmp_path)))
    return app.test_client(), orch, index, tmp_path


def test_health(setup):
    client, _, _, tmp_path = setup
    data = client.get('/health').get_json()
    assert data['status'] == 'ok'
    assert data['sessions'] == 1
    assert data['index']['backend'] == 'memory'
    assert data['watching'] is False


def test_create_write_read_move(setup):
    client, orch, index, tmp_path = setup

    resp = client.post('/file/create', json={'path': 'a/b/c.md', 'content': 'x'})
    assert resp.status_code == 200
    assert resp.get_json()['status'] == 'synced'

    resp = client.post('/file/write', json={'path': 'a/b/c.md', 'content': 'y'})
    assert resp.get_json()['status'] == 'synced'
    assert index.get('a/b/c.md').content == 'y'

    data = client.get('/file', query_string={'path': 'a/b/c.md'}).get_json()
    assert data['content'] == 'y'
    assert data['in_sync'] is True

    resp = client.post('/file/move', json={'source': 'a/b/c.md', 'destination': 'done.md'})
    assert resp.get_json()['target'] == 'done.md'
    assert index.get('done.md').content == 'y'


def test_write_without_index(setup):
    client, _, index, _ = setup
    resp = client.post('/file/write', json={'path': 'draft.md', 'content': 'x', 'index': False})
    assert resp.get_json()['status'] == 'disk_only'
    assert index.get('draft.md') is None
    assert client.get('/health').get_json()['unindexed'] == 1


def test_disk_errors_map_to_status_codes(setup):
    client, _, _, _ = setup

    resp = client.post('/file/write', json={'path': 'missing/a.md', 'content': 'x'})
    assert resp.status_code == 404
    assert resp.get_json()['kind'] == 'not_found'

    resp = client.post('/file/write', json={'path': '../escape.md', 'content': 'x'})
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'outside_vault'

    resp = client.get('/file', query_string={'path': 'nope.md'})
    assert resp.status_code == 404

    resp = client.post('/file/write', json={'path': 'a.md'})
    assert resp.status_code == 400


def test_desync_is_reported_and_reconciled(setup):
    client, orch, index, tmp_path = setup
    index.down = True

    resp = client.post('/file/create', json={'path': 'n.md', 'content': 'saved'})
    assert resp.status_code == 202
    body = resp.get_json()
    assert body['kind'] == 'desync'
    assert 'warning' in body
    assert (tmp_path / 'n.md').read_text() == 'saved'

    desync = client.get('/desync').get_json()
    assert [p['path'] for p in desync['paths']] == ['n.md']
    assert desync['events'][0]['path'] == 'n.md'

    index.down = False
    result = client.post('/reconcile', json={}).get_json()
    assert result['remaining'] == []
    assert index.get('n.md').content == 'saved'


def test_tree(setup):
    client, orch, _, tmp_path = setup
    orch.sync_on_create('notes/a.md', 'a')
    orch.sync_on_create('b.txt', 'b')

    data = client.get('/tree').get_json()
    assert [c['name'] for c in data['tree']['children']] == ['b.txt', 'notes']

    data = client.get('/tree', query_string={'focus': 'notes'}).get_json()
    assert data['tree']['path'] == 'notes'
    assert data['tree']['children'][0]['path'] == 'notes/a.md'

    data = client.get('/tree', query_string={'ext': '.md'}).get_json()
    assert [c['name'] for c in data['tree']['children']] == ['notes']

    assert client.get('/tree', query_string={'focus': 'b.txt'}).status_code == 404


def test_augment_prompt(setup):
    client, orch, _, _ = setup
    orch.sync_on_create('long.md', 'word ' * 200)

    resp = client.post('/prompt/augment', json={'path': 'long.md', 'prompt': 'summarize'})
    assert resp.status_code == 200
    data = resp.get_json()
    assert data['truncated'] is True
    assert data['cutoff_offset'] < 1000
    assert len(data['prompt'].split()) <= 50
    assert data['prompt'].endswith('summarize')


def test_augment_prompt_errors(setup):
    client, orch, _, _ = setup
    orch.sync_on_create('a.md', 'text')

    resp = client.post('/prompt/augment',
                       json={'path': 'a.md', 'prompt': 'q', 'session_id': 'gone'})
    assert resp.status_code == 404
    assert resp.get_json()['kind'] == 'session_not_found'

    resp = client.post('/prompt/augment', json={'path': 'a.md', 'prompt': 'w ' * 60})
    assert resp.status_code == 422
    assert resp.get_json()['kind'] == 'context_too_small'


def test_sessions_endpoints(setup, monkeypatch):
    client, _, _, _ = setup

    class FakeTiktoken:
        def __init__(self, encoding, context_length, model=None):
            self.context_length = context_length

        def tokenize(self, text):
            return text.split()

        def get_context_length(self):
            return self.context_length

        def describe(self):
            return {'tokenizer': 'fake', 'context_length': self.context_length}

    monkeypatch.setattr(service, 'TiktokenSession', FakeTiktoken)

    resp = client.post('/sessions', json={'session_id': 'big', 'context_length': 8000})
    assert resp.status_code == 201
    ids = [s['id'] for s in client.get('/sessions').get_json()['sessions']]
    assert ids == ['big', 'default']

    assert client.post('/sessions', json={'context_length': 'lots'}).status_code == 400
    assert client.delete('/sessions/big').status_code == 200
    assert client.delete('/sessions/big').status_code == 404


def test_search_and_log(setup):
    client, orch, _, _ = setup
    orch.sync_on_create('a.md', 'vault mirror')
    orch.sync_on_create('b.md', 'unrelated')

    results = client.get('/search', query_string={'q': 'mirror'}).get_json()['results']
    assert [r['path'] for r in results] == ['a.md']

    entries = client.get('/log', query_string={'limit': 1}).get_json()['entries']
    assert entries[0]['path'] == 'b.md'
    assert entries[0]['operation'] == 'create'


def test_move_to_vault_root(setup):
    client, orch, index, tmp_path = setup
    orch.sync_on_create('notes/a.md', 'a')

    resp = client.post('/file/move', json={'source': 'notes/a.md', 'destination': ''})

    assert resp.status_code == 200
    assert resp.get_json()['target'] == 'a.md'
    assert index.get('a.md').content == 'a'

    resp = client.post('/file/move', json={'source': 'a.md'})
    assert resp.status_code == 400


def test_non_numeric_limit_is_bad_request(setup):
    client, _, _, _ = setup
    resp = client.get('/search', query_string={'q': 'x', 'limit': 'many'})
    assert resp.status_code == 400
    assert resp.get_json()['kind'] == 'bad_request'
    assert client.get('/log', query_string={'limit': 'all'}).status_code == 400
