"""
routes/data.py — JSON pass-through to the active garden repository.

Provides:
- GET /api/settings: Current settings (always complete)
- PUT /api/settings: Replace settings
- GET /api/<collection>: All records of a collection (events newest first)
- PUT /api/<collection>/<id>: Insert or update one record
- DELETE /api/<collection>/<id>: Remove one record (unknown ids are fine)

Collections: areas, plants, seedlings, events.
Works with either backend: synchronous results are used directly,
coroutines are awaited.
"""

import inspect

import structlog
from flask import Blueprint, abort, current_app, jsonify, request

from models import Area, GardenEvent, Plant, Seedling, Settings, describe_ai_provider, to_record
from utils.validators import validate_item

logger = structlog.get_logger(__name__)

data_bp = Blueprint('data', __name__, url_prefix='/api')

# collection -> (getter, saver, deleter, model)
COLLECTIONS = {
    'areas': ('get_areas', 'save_area', 'delete_area', Area),
    'plants': ('get_custom_plants', 'save_plant', 'delete_plant', Plant),
    'seedlings': ('get_seedlings', 'save_seedling', 'delete_seedling', Seedling),
    'events': ('get_events', 'save_event', 'delete_event', GardenEvent),
}


def _repository():
    return current_app.extensions['garden_repository']


async def _call(method, *args):
    result = method(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def _collection(name):
    if name not in COLLECTIONS:
        abort(404)
    return COLLECTIONS[name]


@data_bp.route('/settings', methods=['GET'])
async def get_settings():
    settings = await _call(_repository().get_settings)
    return jsonify(to_record(settings))


@data_bp.route('/settings', methods=['PUT'])
async def put_settings():
    settings = validate_item(Settings, request.get_json(silent=True), 'api:settings')
    if settings is None:
        return jsonify({'error': 'Invalid settings'}), 400

    if not await _call(_repository().save_settings, settings):
        return jsonify({'error': 'Storage unavailable'}), 503

    logger.info("settings_saved", ai_provider=describe_ai_provider(settings.ai_provider))
    return jsonify(to_record(settings))


@data_bp.route('/<collection>', methods=['GET'])
async def list_records(collection):
    getter, _, _, _ = _collection(collection)
    items = await _call(getattr(_repository(), getter))
    return jsonify([to_record(item) for item in items])


@data_bp.route('/<collection>/<entity_id>', methods=['PUT'])
async def put_record(collection, entity_id):
    _, saver, _, model = _collection(collection)
    entity = validate_item(model, request.get_json(silent=True), f"api:{collection}")
    if entity is None:
        return jsonify({'error': f'Invalid {model.__name__}'}), 400
    if entity.id != entity_id:
        return jsonify({'error': 'Record id does not match URL'}), 400

    if not await _call(getattr(_repository(), saver), entity):
        return jsonify({'error': 'Storage unavailable'}), 503
    return jsonify(to_record(entity))


@data_bp.route('/<collection>/<entity_id>', methods=['DELETE'])
async def delete_record(collection, entity_id):
    _, _, deleter, _ = _collection(collection)
    if not await _call(getattr(_repository(), deleter), entity_id):
        return jsonify({'error': 'Storage unavailable'}), 503
    return '', 204
