"""Admin console: whitelist maintenance and request timing."""
import csv
import io
import logging
import math

from flask import Blueprint, Response, current_app, jsonify, request

from .auth_gate import admin_required
from .dedup import fingerprint
from .errors import NotFound, ValidationError

logger = logging.getLogger(__name__)

bp = Blueprint('admin', __name__, url_prefix='/api/admin')
perf_bp = Blueprint('performance', __name__, url_prefix='/api/performance')


def _whitelist():
    return current_app.extensions['whitelist']


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        raise ValidationError(f'Query parameter {name} must be an integer')


@bp.route('/pairs', methods=['GET'])
@admin_required
def list_pairs(identity):
    keyword = request.args.get('keyword', '')
    page = _int_arg('page', 1)
    page_size = _int_arg('page_size', 10)

    # identical concurrent listings share one query
    key = fingerprint(identity.subject_id, 'GET', request.path, keyword, page, page_size)
    pairs, total = current_app.extensions['dedup'].join(
        key, lambda: _whitelist().list_pairs(keyword, page, page_size)
    )
    return jsonify({
        'data': pairs,
        'pagination': {
            'total': total,
            'page': page,
            'page_size': page_size,
            'total_pages': math.ceil(total / page_size) if page_size > 0 else 0,
        },
    })


@bp.route('/pairs', methods=['POST'])
@admin_required
def create_pair(identity):
    data = request.get_json(silent=True) or {}
    pair = _whitelist().create(data.get('hospital_name'), data.get('product_batch'))
    logger.info(f"{identity.subject_id} added whitelist pair {pair['id']}")
    return jsonify(pair), 201


@bp.route('/pairs/<int:pair_id>', methods=['PUT'])
@admin_required
def update_pair(identity, pair_id):
    data = request.get_json(silent=True) or {}
    pair = _whitelist().update(pair_id, data.get('hospital_name'), data.get('product_batch'))
    return jsonify({'success': True, 'data': pair})


@bp.route('/pairs/<int:pair_id>', methods=['DELETE'])
@admin_required
def delete_pair(identity, pair_id):
    _whitelist().delete(pair_id)
    logger.info(f"{identity.subject_id} deleted whitelist pair {pair_id}")
    return jsonify({'success': True})


@bp.route('/pairs/import-csv', methods=['POST'])
@admin_required
def import_csv(identity):
    upload = request.files.get('file')
    if upload is None:
        raise ValidationError('No file uploaded')
    try:
        text = upload.read().decode('utf-8-sig')
    except UnicodeDecodeError:
        raise ValidationError('CSV file must be UTF-8 encoded')

    rows = [
        (row['hospital_name'], row['product_batch'])
        for row in csv.DictReader(io.StringIO(text))
        if row.get('hospital_name') and row.get('product_batch')
    ]
    if not rows:
        raise ValidationError('CSV file has no valid hospital_name/product_batch rows')

    imported, failed = _whitelist().bulk_import(rows)
    logger.info(f"CSV import by {identity.subject_id}: {imported} imported, {failed} failed")
    return jsonify({'success': True, 'total': len(rows), 'imported': imported, 'failed': failed})


@bp.route('/pairs/export-csv', methods=['GET'])
@admin_required
def export_csv(identity):
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(['hospital_name', 'product_batch'])
    for pair in _whitelist().all_pairs():
        writer.writerow([pair['hospital_name'], pair['product_batch']])
    return Response(
        buf.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': 'attachment; filename=auth_pairs.csv'},
    )


# ----------------- Request timing -----------------

@perf_bp.route('/stats', methods=['GET'])
@admin_required
def performance_stats(identity):
    return jsonify({'success': True, 'data': current_app.extensions['metrics'].stats()})


@perf_bp.route('/slowest', methods=['GET'])
@admin_required
def performance_slowest(identity):
    limit = _int_arg('limit', 10)
    return jsonify({'success': True, 'data': current_app.extensions['metrics'].slowest(limit)})


@perf_bp.route('/path/<path:path>', methods=['GET'])
@admin_required
def performance_path(identity, path):
    data = current_app.extensions['metrics'].path_stats('/' + path)
    if data is None:
        raise NotFound('No recent performance data for this path')
    return jsonify({'success': True, 'data': data})


@perf_bp.route('/cleanup', methods=['POST'])
@admin_required
def performance_cleanup(identity):
    data = request.get_json(silent=True) or {}
    try:
        max_age_hours = float(data.get('maxAgeHours', 24))
    except (TypeError, ValueError):
        raise ValidationError('maxAgeHours must be a number')
    removed = current_app.extensions['metrics'].cleanup(max_age_hours)
    return jsonify({'success': True, 'removedCount': removed})
