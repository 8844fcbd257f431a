"""
JSON API behind the artist and admin dashboard pages.

Upload progress is pushed to connected clients over Socket.IO as
'upload_progress' events.
"""

import logging
import os

from flask import Flask, request, jsonify
from flask_socketio import SocketIO, emit

from .duration import AudioAsset
from .library import TrackNotFoundError, has_placeholder_durations
from .links import diagnose_storage
from .services import Services
from .uploader import UploadStatus

logger = logging.getLogger(__name__)


def _error(message: str, status: int):
    return jsonify({'error': message}), status


def _uploaded_asset():
    """AudioAsset for the 'file' part of a multipart request, or None."""
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        return None
    return AudioAsset.from_bytes(upload.filename, upload.read(), upload.mimetype)


def create_app(services: Services):
    """
    Build the Flask app and its SocketIO wrapper.

    Returns:
        (app, socketio)
    """
    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.urandom(24)
    # Leave room for the multipart envelope; the upload engine enforces the real limit
    app.config['MAX_CONTENT_LENGTH'] = services.config.max_upload_bytes + 1024 * 1024
    socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

    library = services.library

    @app.errorhandler(413)
    def too_large(_e):
        return _error('File too large', 413)

    @app.route('/api/tracks', methods=['GET'])
    def list_tracks():
        try:
            tracks = library.browse(
                search=request.args.get('search', ''),
                genre=request.args.get('genre', 'all'),
                status=request.args.get('status', 'all'),
                uploader_id=request.args.get('uploader_id'),
            )
        except ValueError as e:
            return _error(str(e), 400)
        return jsonify({
            'tracks': [t.to_dict() for t in tracks],
            'has_placeholder_durations': has_placeholder_durations(tracks),
            'stats': library.stats(request.args.get('uploader_id')),
        })

    @app.route('/api/tracks/<track_id>', methods=['GET'])
    def get_track(track_id):
        try:
            return jsonify(library.get(track_id).to_dict())
        except TrackNotFoundError:
            return _error('Track not found', 404)

    @app.route('/api/tracks/<track_id>', methods=['PATCH'])
    def update_track(track_id):
        changes = request.get_json(silent=True)
        if not isinstance(changes, dict):
            return _error('Expected a JSON object', 400)
        try:
            track = library.edit(track_id, changes)
        except TrackNotFoundError:
            return _error('Track not found', 404)
        except ValueError as e:
            return _error(str(e), 400)
        return jsonify(track.to_dict())

    @app.route('/api/tracks/<track_id>', methods=['DELETE'])
    def delete_track(track_id):
        remove_audio = request.args.get('remove_audio', '').lower() in ('1', 'true', 'yes')
        try:
            track = library.delete(track_id, remove_audio=remove_audio)
        except TrackNotFoundError:
            return _error('Track not found', 404)
        return jsonify({'deleted': track.id})

    @app.route('/api/albums', methods=['GET'])
    def list_albums():
        owner_id = request.args.get('owner_id')
        if not owner_id:
            return _error('owner_id is required', 400)
        return jsonify({'albums': [a.to_dict() for a in library.albums(owner_id)]})

    @app.route('/api/uploads/validate', methods=['POST'])
    def validate_upload():
        asset = _uploaded_asset()
        if asset is None:
            return _error('No file provided', 400)
        validation = services.uploader.validate(asset)
        if not validation.valid:
            return _error(validation.error, 400)
        draft = validation.draft
        return jsonify({
            'file_name': asset.name,
            'status': UploadStatus.EDITING.value,
            'title': draft.title,
            'genre': draft.genre,
            'duration': draft.duration,
            'estimate': draft.estimate.to_dict(),
        })

    @app.route('/api/uploads', methods=['POST'])
    def create_upload():
        asset = _uploaded_asset()
        if asset is None:
            return _error('No file provided', 400)
        uploader_id = request.form.get('uploader_id')
        if not uploader_id:
            return _error('uploader_id is required', 400)

        validation = services.uploader.validate(asset)
        if not validation.valid:
            return _error(validation.error, 400)

        draft = validation.draft
        edits = {k: request.form[k] for k in ('title', 'genre', 'album_id', 'duration') if request.form.get(k)}
        try:
            draft.update(**edits)
        except ValueError as e:
            return _error(str(e), 400)

        result = services.uploader.upload(
            draft, uploader_id,
            progress_callback=lambda p: socketio.emit('upload_progress', p.to_dict())
        )
        if not result.ok:
            return _error(result.error, 502)
        return jsonify(result.track.to_dict()), 201

    @app.route('/api/durations/estimate', methods=['POST'])
    def estimate_duration():
        asset = _uploaded_asset()
        if asset is None:
            return _error('No file provided', 400)
        return jsonify(services.estimator.estimate(asset).to_dict())

    @app.route('/api/durations/fix', methods=['POST'])
    def fix_durations():
        body = request.get_json(silent=True) or {}
        report = services.corrector.run(body.get('uploader_id'))
        return jsonify(report.to_dict())

    @app.route('/api/storage/diagnose', methods=['GET'])
    def storage_diagnosis():
        result = diagnose_storage(services.storage, services.resolver)
        return jsonify({
            'healthy': result.healthy,
            'files': len(result.files),
            'public': vars(result.public_check) if result.public_check else None,
            'signed': vars(result.signed_check) if result.signed_check else None,
            'error': result.error,
        })

    @socketio.on('connect')
    def handle_connect():
        emit('status', {'msg': 'Connected to dashboard server'})

    return app, socketio


def start_server(services: Services, debug=False, port=5000):
    app, socketio = create_app(services)
    socketio.run(app, debug=debug, port=port, allow_unsafe_werkzeug=True)
