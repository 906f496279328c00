#!/usr/bin/env python3
"""
Vault Sync Service - HTTP front for the vault mirror

Exposes the sync and prompt operations over JSON:
  POST /file/write         write a file, optionally index it
  POST /file/create        create a file (and parent directories), index it
  POST /file/move          move a file or directory, carry its records
  POST /directory/create   recursive, idempotent mkdir
  GET  /file               read a file
  GET  /tree               vault structure snapshot
  POST /prompt/augment     file content + prompt, fit to a session's context
  GET  /desync             paths whose index update failed
  POST /reconcile          re-sync parked (or given) paths from disk

Usage:
    VAULT_ROOT=/path/to/vault PORT=9898 python -m vaultsync.gateway.service
"""

import logging
import time
from collections import deque

from flask import Flask, jsonify, request

from vaultsync.common.config import VaultConfig
from vaultsync.common.errors import (
    DiskError, PathNotFound, PermissionDenied, PathOutsideVault,
    ContextTooSmall, SessionNotFound, VaultSyncError,
)
from vaultsync.common.synclog import SyncLog
from vaultsync.index.content_index import MemoryContentIndex
from vaultsync.index.redis_index import RedisClient, RedisContentIndex
from vaultsync.prompts.sessions import (
    SessionRegistry, TiktokenSession, augment_prompt_with_file,
)
from vaultsync.sync.filestore import LocalFileStore
from vaultsync.sync.orchestrator import DESYNCED, FAILED, SyncOrchestrator
from vaultsync.sync.watcher import VaultWatcher
from vaultsync.tree.builder import build_tree, build_tree_with_report, flatten

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    PathNotFound: 404,
    PermissionDenied: 403,
    PathOutsideVault: 400,
    DiskError: 500,
    ContextTooSmall: 422,
    SessionNotFound: 404,
}


def error_status(error: VaultSyncError) -> int:
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


def bad_request(message: str):
    return jsonify({'error': message, 'kind': 'bad_request'}), 400


def int_arg(name: str, default: int) -> int:
    """Integer query parameter; ValueError names the parameter."""
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name} must be an integer')


def sync_response(result, start: float):
    body = result.to_dict()
    body['ms'] = (time.time() - start) * 1000
    if result.status == FAILED:
        return jsonify(body), error_status(result.error)
    if result.status == DESYNCED:
        body['warning'] = 'file saved but index update failed; queued for reconciliation'
        return jsonify(body), 202
    return jsonify(body)


def create_app(orchestrator: SyncOrchestrator, sessions: SessionRegistry,
               config: VaultConfig = None, watcher: VaultWatcher = None) -> Flask:
    config = config or VaultConfig()
    filestore = orchestrator.filestore
    index = orchestrator.index
    desync_events = deque(maxlen=100)

    def on_desync(error):
        desync_events.append({'ts': time.time(), 'path': error.path, 'error': str(error.cause)})

    orchestrator.add_desync_listener(on_desync)

    app = Flask(__name__)

    @app.errorhandler(VaultSyncError)
    def handle_vault_error(error):
        return jsonify(error.to_dict()), error_status(error)

    def json_body() -> dict:
        return request.get_json(silent=True) or {}

    # ========================================================================
    # Health
    # ========================================================================

    @app.route('/health')
    def health():
        stats = index.get_stats() if hasattr(index, 'get_stats') else {}
        return jsonify({
            'status': 'ok',
            'vault': str(filestore.root),
            'index': stats,
            'desynced': len(orchestrator.desynced_paths()),
            'unindexed': len(orchestrator.unindexed_paths()),
            'sessions': len(sessions),
            'watching': bool(watcher and watcher.running),
        })

    # ========================================================================
    # Files
    # ========================================================================

    @app.route('/file/write', methods=['POST'])
    def write_file():
        start = time.time()
        data = json_body()
        if not data.get('path') or not isinstance(data.get('content'), str):
            return bad_request('path and content are required')
        result = orchestrator.sync_on_write(
            data['path'], data['content'], bool(data.get('index', True)),
        )
        return sync_response(result, start)

    @app.route('/file/create', methods=['POST'])
    def create_file():
        start = time.time()
        data = json_body()
        content = data.get('content', '')
        if not data.get('path') or not isinstance(content, str):
            return bad_request('path is required and content must be text')
        return sync_response(orchestrator.sync_on_create(data['path'], content), start)

    @app.route('/directory/create', methods=['POST'])
    def create_directory():
        start = time.time()
        data = json_body()
        if not data.get('path'):
            return bad_request('path is required')
        return sync_response(orchestrator.create_directory(data['path']), start)

    @app.route('/file/move', methods=['POST'])
    def move_entry():
        start = time.time()
        data = json_body()
        # an empty destination moves the entry to the vault root
        if not data.get('source') or not isinstance(data.get('destination'), str):
            return bad_request('source and destination are required')
        result = orchestrator.sync_on_move(data['source'], data['destination'])
        return sync_response(result, start)

    @app.route('/file')
    def read_file():
        start = time.time()
        path = request.args.get('path', '')
        if not path:
            return bad_request('path parameter required')
        content = filestore.read(path)
        record = index.get(filestore.relative(path))
        return jsonify({
            'path': filestore.relative(path),
            'content': content,
            'indexed': record is not None,
            'in_sync': record is not None and record.content == content,
            'ms': (time.time() - start) * 1000,
        })

    @app.route('/tree')
    def tree():
        start = time.time()
        focus = request.args.get('focus', '')
        ext = request.args.get('ext')
        extensions = [e for e in ext.split(',') if e] if ext else config.tree_extensions
        root = filestore.resolve(focus) if focus else filestore.root
        if not root.is_dir():
            raise PathNotFound(f"{focus}: not a directory", focus)

        entry, report = build_tree_with_report(
            str(root), extensions=extensions, relative_to=str(filestore.root),
        )
        return jsonify({
            'tree': entry.to_dict(),
            'skipped': [{'path': s.path, 'reason': s.reason} for s in report.skipped],
            'ms': (time.time() - start) * 1000,
        })

    # ========================================================================
    # Prompts
    # ========================================================================

    @app.route('/prompt/augment', methods=['POST'])
    def augment_prompt():
        start = time.time()
        data = json_body()
        if not data.get('path') or not isinstance(data.get('prompt'), str):
            return bad_request('path and prompt are required')
        session = sessions.resolve(data.get('session_id', 'default'))
        result = augment_prompt_with_file(
            filestore, data['path'], data['prompt'], session,
            reserve_tokens=config.response_reserve_tokens,
        )
        body = result.to_dict()
        body['ms'] = (time.time() - start) * 1000
        return jsonify(body)

    @app.route('/sessions', methods=['GET'])
    def list_sessions():
        return jsonify({'sessions': sessions.list()})

    @app.route('/sessions', methods=['POST'])
    def add_session():
        data = json_body()
        try:
            context_length = int(data.get('context_length', config.default_context_length))
        except (TypeError, ValueError):
            return bad_request('context_length must be an integer')
        if context_length <= 0:
            return bad_request('context_length must be positive')
        try:
            session = TiktokenSession(
                data.get('encoding', config.tiktoken_encoding), context_length,
                model=data.get('model'),
            )
        except (KeyError, ValueError) as e:
            return bad_request(f'unknown encoding or model: {e}')
        session_id = sessions.register(session, data.get('session_id'))
        return jsonify({'id': session_id, **session.describe()}), 201

    @app.route('/sessions/<session_id>', methods=['DELETE'])
    def remove_session(session_id):
        if not sessions.remove(session_id):
            raise SessionNotFound(session_id)
        return jsonify({'removed': session_id})

    # ========================================================================
    # Index state
    # ========================================================================

    @app.route('/desync')
    def desync():
        pending = orchestrator.desynced_paths()
        return jsonify({
            'paths': [{'path': p, 'error': str(e.cause)} for p, e in sorted(pending.items())],
            'events': list(desync_events),
        })

    @app.route('/reconcile', methods=['POST'])
    def reconcile():
        start = time.time()
        paths = json_body().get('paths')
        if paths is not None and not isinstance(paths, list):
            return bad_request('paths must be a list')
        results = orchestrator.reconcile(paths)
        return jsonify({
            'results': [r.to_dict() for r in results],
            'remaining': sorted(orchestrator.desynced_paths()),
            'ms': (time.time() - start) * 1000,
        })

    @app.route('/search')
    def search():
        start = time.time()
        query = request.args.get('q', '')
        try:
            limit = int_arg('limit', 20)
        except ValueError as e:
            return bad_request(str(e))
        if not hasattr(index, 'search'):
            return jsonify({'error': 'search not supported by this index backend',
                            'kind': 'unsupported'}), 501
        return jsonify({
            'results': index.search(query, limit),
            'ms': (time.time() - start) * 1000,
        })

    @app.route('/log')
    def sync_log():
        try:
            limit = int_arg('limit', 50)
        except ValueError as e:
            return bad_request(str(e))
        return jsonify({'entries': [e.to_dict() for e in orchestrator.log.recent(limit)]})

    return app


def build_index(config: VaultConfig):
    if config.index_backend == 'redis':
        client = RedisClient(config.redis_url)
        if not client.ping():
            print(f"Warning: Redis not reachable at {config.redis_url}; writes will desync")
        return RedisContentIndex(client, prefix=config.redis_prefix)
    return MemoryContentIndex()


def main():
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(name)s %(levelname)s %(message)s')
    config = VaultConfig.from_env()
    if not config.vault_root:
        raise SystemExit('VAULT_ROOT is required')

    print("=" * 60)
    print("Vault Sync Service")
    print("=" * 60)
    print(f"Vault: {config.vault_root}")
    print(f"Index backend: {config.index_backend}")

    filestore = LocalFileStore(config.vault_root)
    orchestrator = SyncOrchestrator(filestore, build_index(config),
                                    log=SyncLog(config.sync_log_size))

    sessions = SessionRegistry()
    sessions.register(
        TiktokenSession(config.tiktoken_encoding, config.default_context_length),
        'default',
    )
    print(f"Default session: {config.tiktoken_encoding}, {config.default_context_length} tokens")

    start = time.time()
    files = [e.path for e in flatten(build_tree(str(filestore.root), config.tree_extensions))]
    results = orchestrator.reconcile(files)
    indexed = sum(1 for r in results if r.ok)
    print(f"Indexed {indexed}/{len(files)} files in {time.time() - start:.2f}s")

    watcher = None
    if config.watch_vault:
        watcher = VaultWatcher(orchestrator, config.tree_extensions)
        watcher.start()
        print("File watcher started")

    app = create_app(orchestrator, sessions, config, watcher)
    print()

    try:
        print(f"Listening on http://0.0.0.0:{config.port}")
        app.run(host='0.0.0.0', port=config.port, threaded=True)
    finally:
        if watcher:
            watcher.stop()


if __name__ == '__main__':
    main()
