"""
API routes - JSON endpoints over the analytics services
"""
from flask import request, jsonify, abort

from config import APP_VERSION
from fleetwatch import get_orchestrator
from fleetwatch.routes import api_bp
from fleetwatch.utils import decode_upload


@api_bp.route('/health', methods=['GET'])
def liveness():
    """Liveness probe"""
    return jsonify({'status': 'ok', 'version': APP_VERSION})


@api_bp.route('/devices/<device_id>/logs', methods=['POST'])
def upload_log(device_id):
    """Ingest a log upload (multipart file or raw text body) and analyze it"""
    orchestrator = get_orchestrator()
    store = orchestrator.store
    device = store.get_device(device_id)
    if device is None:
        abort(404)

    upload = request.files.get('file')
    if upload is not None:
        filename = upload.filename
        content = decode_upload(upload.read())
    else:
        filename = request.args.get('filename')
        content = decode_upload(request.get_data())

    if not content.strip():
        return jsonify({'error': 'Log upload is empty'}), 400

    log = store.create_log(device, content, filename=filename)
    store.mark_device_seen(device, log.uploaded_at)
    anomalies = orchestrator.handle_log_ingested(log.id)

    return jsonify({
        'log': store.get_log(log.id).to_dict(),
        'anomalies': [a.to_dict() for a in anomalies]
    }), 201


@api_bp.route('/logs/<log_id>/summary', methods=['GET'])
def get_log_summary(log_id):
    """Stored summary for a log, computed on first request"""
    summarizer = get_orchestrator().summarizer
    if summarizer.store.get_log(log_id) is None:
        abort(404)

    summary = summarizer.get_summary(log_id) or summarizer.summarize_and_store(log_id)
    return jsonify(summary.to_dict())


@api_bp.route('/logs/<log_id>/summary', methods=['POST'])
def recompute_log_summary(log_id):
    """Recompute and store the summary for a log"""
    summary = get_orchestrator().summarizer.summarize_and_store(log_id)
    if summary is None:
        abort(404)
    return jsonify(summary.to_dict())


@api_bp.route('/devices/<device_id>/health', methods=['GET'])
def get_device_health(device_id):
    """Latest stored health record"""
    record = get_orchestrator().scorer.get_health(device_id)
    if record is None:
        abort(404)
    return jsonify(record.to_dict())


@api_bp.route('/devices/<device_id>/health', methods=['POST'])
def compute_device_health(device_id):
    """Recompute health for one device"""
    result = get_orchestrator().scorer.compute_health(device_id)
    if result is None:
        abort(404)
    return jsonify(result.to_dict())


@api_bp.route('/devices/<device_id>/health/history', methods=['GET'])
def get_device_health_history(device_id):
    """Health score history, most recent first"""
    orchestrator = get_orchestrator()
    if orchestrator.store.get_device(device_id) is None:
        abort(404)

    limit = request.args.get('limit', type=int)
    if limit is not None:
        limit = max(1, min(limit, 1000))
    history = orchestrator.scorer.get_history(device_id, limit=limit)
    return jsonify([point.to_dict() for point in history])


@api_bp.route('/tenants/<tenant_id>/health', methods=['GET'])
def get_fleet_health(tenant_id):
    """Health records for a tenant's fleet, worst first"""
    records = get_orchestrator().scorer.get_fleet_health(tenant_id)
    return jsonify([r.to_dict() for r in records])


@api_bp.route('/tenants/<tenant_id>/anomalies', methods=['GET'])
def get_tenant_anomalies(tenant_id):
    """Anomalies for a tenant; ?unresolved=1 limits to open ones"""
    engine = get_orchestrator().engine
    if request.args.get('unresolved', '').lower() in ('1', 'true', 'yes'):
        anomalies = engine.get_unresolved(tenant_id)
    else:
        anomalies = engine.get_anomalies(tenant_id)
    return jsonify([a.to_dict() for a in anomalies])


@api_bp.route('/devices/<device_id>/anomalies', methods=['GET'])
def get_device_anomalies(device_id):
    """Anomalies for one device, most recent first"""
    orchestrator = get_orchestrator()
    if orchestrator.store.get_device(device_id) is None:
        abort(404)
    anomalies = orchestrator.engine.get_device_anomalies(device_id)
    return jsonify([a.to_dict() for a in anomalies])


@api_bp.route('/anomalies/<anomaly_id>/resolve', methods=['POST'])
def resolve_anomaly(anomaly_id):
    """Mark an anomaly resolved. Resolution happens once."""
    orchestrator = get_orchestrator()
    anomaly = orchestrator.store.get_anomaly(anomaly_id)
    if anomaly is None:
        abort(404)

    if not orchestrator.engine.resolve_anomaly(anomaly_id):
        return jsonify({'error': 'Anomaly already resolved'}), 409
    return jsonify(orchestrator.store.get_anomaly(anomaly_id).to_dict())
