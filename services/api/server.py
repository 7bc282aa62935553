from __future__ import annotations
from flask import Flask, request, jsonify, Response
from flask_sock import Sock
from werkzeug.exceptions import HTTPException
from services.api.orchestrator import REGISTRY, start_run, ARTIFACTS_ROOT
from services.config.env import get_api_config
from services.config.logging import get_logger
from services.forecasting.assumptions import BusinessCase, coerce_number
from services.forecasting.engine import calculate
from services.forecasting.errors import InputError
from services.simulation.metrics import DEFAULT_METRICS, parse_metrics
from services.simulation.optimizer import grid_search, solve_for_target
from services.simulation.presets import apply_scenario
from services.simulation.runner import PerturbationSpec, ScenarioDefinition, run_scenarios, run_sensitivity

import io
import zipfile

import time
import json
from collections import deque, defaultdict
from pathlib import Path

app = Flask(__name__)
sock = Sock(app)
logger = get_logger(__name__)

OPENAPI_PATH = Path(__file__).with_name('openapi.json')

# Configuration helpers (overridable via app.config in tests)

def _get_api_key() -> str | None:
    if 'API_KEY' in app.config:
        return app.config.get('API_KEY')
    return get_api_config().api_key


def _get_rate_limit() -> tuple[int, float]:
    n = app.config.get('RATE_LIMIT_N')
    w = app.config.get('RATE_LIMIT_WINDOW_SEC')
    cfg = get_api_config()
    if n is None:
        n = cfg.rate_limit_n
    if w is None:
        w = cfg.rate_limit_window_sec
    return int(n), float(w)

_recent: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=100))


def _client_ip() -> str:
    xff = request.headers.get('X-Forwarded-For')
    if xff:
        return xff.split(',')[0].strip()
    return request.remote_addr or 'anon'


def _check_api_key():
    api_key = _get_api_key()
    if api_key:
        provided = request.headers.get('X-API-Key')
        if provided != api_key:
            return jsonify({'error': 'unauthorized'}), 401
    return None


def _check_rate_limit(ip: str):
    # Allow if rate limiting disabled or N <= 0
    n, window = _get_rate_limit()
    if n <= 0:
        return None
    now = time.time()
    dq = _recent[ip]
    # Drop old entries outside window
    while dq and now - dq[0] > window:
        dq.popleft()
    if len(dq) >= n:
        retry = max(0.0, window - (now - dq[0]))
        resp = jsonify({'error': 'rate_limited'})
        resp.status_code = 429
        resp.headers['Retry-After'] = f"{retry:.2f}"
        return resp
    dq.append(now)
    return None

@app.before_request
def _auth_and_rate_limit():
    # Enforce for calculation and run routes; skip the OpenAPI document
    if request.path.startswith(('/runs', '/calc', '/simulations')):
        unauthorized = _check_api_key()
        if unauthorized is not None:
            return unauthorized
        # Rate limit only for POST /runs
        if request.method == 'POST' and request.path == '/runs':
            rl = _check_rate_limit(_client_ip())
            if rl is not None:
                return rl
    return None


@app.errorhandler(InputError)
def _input_error(e: InputError):
    return jsonify(e.to_dict()), 400


@app.errorhandler(Exception)
def _server_error(e: Exception):
    # routing errors (404, 405, redirects) keep their own response
    if isinstance(e, HTTPException):
        return e
    logger.exception("request failed: %s %s", request.method, request.path)
    return jsonify({'error': 'server_error'}), 500


def _json_body() -> dict:
    payload = request.get_json(force=True, silent=True)
    if not isinstance(payload, dict):
        raise InputError('invalid_shape', 'request body must be a JSON object')
    return payload


def _case_from(payload: dict) -> BusinessCase:
    raw = payload.get('businessCase', payload.get('business_case'))
    if raw is None:
        raise InputError('missing_field', 'businessCase is required', 'businessCase')
    return BusinessCase.from_dict(raw)


def _metrics_from(payload: dict) -> list:
    raw = payload.get('metrics') or [m.value for m in DEFAULT_METRICS]
    if not isinstance(raw, list):
        raise InputError('invalid_shape', 'metrics must be a list', 'metrics')
    try:
        return parse_metrics(raw)
    except ValueError:
        raise InputError('invalid_value', f"unknown metric in {raw}", 'metrics')


def _number(payload: dict, key: str, default, prefix: str | None = None):
    value = payload.get(key)
    if value is None:
        return default
    return coerce_number(value, f"{prefix}.{key}" if prefix else key)


@app.post('/calc')
def post_calc():
    bc = _case_from(_json_body())
    return jsonify(calculate(bc).to_dict())


@app.post('/simulations/sensitivity')
def post_sensitivity():
    payload = _json_body()
    bc = _case_from(payload)
    specs_raw = payload.get('specs')
    if not isinstance(specs_raw, list):
        raise InputError('missing_field', 'specs must be a list', 'specs')
    specs = [PerturbationSpec.from_dict(s) for s in specs_raw]
    return jsonify(run_sensitivity(bc, specs, _metrics_from(payload)).to_dict())


@app.post('/simulations/scenario')
def post_scenario():
    payload = _json_body()
    bc = _case_from(payload)
    adjust = payload.get('adjust')
    if isinstance(adjust, dict):
        # quick percentage levers on every SKU
        bc = apply_scenario(
            bc,
            volume_pct=_number(adjust, 'volumePct', 0, 'adjust'),
            conversion_recovery_pct=_number(adjust, 'conversionRecoveryPct', 0, 'adjust'),
            conversion_cost_pct=_number(adjust, 'conversionCostPct', 0, 'adjust'),
            wc_days_pct=_number(adjust, 'wcDaysPct', 0, 'adjust'),
        )
    scenarios_raw = payload.get('scenarios') or []
    if not isinstance(scenarios_raw, list):
        raise InputError('invalid_shape', 'scenarios must be a list', 'scenarios')
    scenarios = [ScenarioDefinition.from_dict(s) for s in scenarios_raw]
    return jsonify(run_scenarios(bc, scenarios, _metrics_from(payload)).to_dict())


@app.post('/simulations/optimize')
def post_optimize():
    payload = _json_body()
    bc = _case_from(payload)
    metric = payload.get('metric', 'NPV')
    try:
        (metric,) = parse_metrics([metric])
    except ValueError:
        raise InputError('invalid_value', f"unknown metric {metric}", 'metric')
    target = _number(payload, 'target', None)
    axes = payload.get('axes')
    if axes is not None:
        if not isinstance(axes, list) or not all(isinstance(a, dict) for a in axes):
            raise InputError('invalid_shape', 'axes must be a list of {path, values}', 'axes')
        result = grid_search(bc, [(a.get('path'), a.get('values') or []) for a in axes], metric, target)
        return jsonify(result.to_dict())
    path = payload.get('path')
    if not path or target is None:
        raise InputError('missing_field', 'path and target are required without axes', 'path')
    result = solve_for_target(
        bc, path, metric, target,
        lo=_number(payload, 'lo', 0.1),
        hi=_number(payload, 'hi', 10.0),
    )
    return jsonify(result.to_dict())


@app.post('/runs')
def post_runs():
    payload = _json_body()
    bc = _case_from(payload)
    metrics = [m.value for m in _metrics_from(payload)]
    specs = [PerturbationSpec.from_dict(s) for s in payload.get('sensitivity') or []]
    rid = start_run(bc, metrics, specs)
    return jsonify({'run_id': rid, 'status': 'queued'})

@app.get('/runs/<rid>')
def get_run(rid: str):
    r = REGISTRY.get(rid)
    if not r:
        return jsonify({'error': 'not_found'}), 404
    return jsonify({
        'run_id': r.id,
        'case_name': r.case_name,
        'status': r.status,
        'summary': r.summary,
        'artifacts': list(r.artifacts.keys()),
        'events': r.events,
        'error': r.error,
    })
@app.get('/runs/<rid>/artifacts/<name>')
def get_artifact(rid: str, name: str):
    r = REGISTRY.get(rid)
    if not r:
        return jsonify({'error': 'not_found'}), 404
    body = r.artifacts.get(name)
    if body is None:
        return jsonify({'error': 'artifact_not_found'}), 404
    if name.endswith('.csv'):
        mimetype = 'text/csv'
    elif name.endswith('.md'):
        mimetype = 'text/markdown'
    elif name.endswith('.json'):
        mimetype = 'application/json'
    else:
        mimetype = 'application/octet-stream'
    return Response(body, mimetype=mimetype)

@app.get('/openapi.json')
def get_openapi():
    if not OPENAPI_PATH.exists():
        return jsonify({'error': 'openapi_not_found'}), 404
    return jsonify(json.loads(OPENAPI_PATH.read_text()))

@sock.route('/runs/<rid>/events')
def ws_events(ws, rid):  # pragma: no cover (basic smoke only)
    r = REGISTRY.get(rid)
    if not r:
        ws.close()
        return
    last_idx = 0
    # Stream existing then poll for new events for a short time
    start = time.time()
    while ws.connected and time.time() - start < 10:
        evs = r.events
        if last_idx < len(evs):
            for ev in evs[last_idx:]:
                ws.send(json.dumps(ev))
            last_idx = len(evs)
        if r.status in ('completed', 'failed'):
            break
        time.sleep(0.05)

@app.get('/runs')
def list_runs():
    # List persisted runs from disk; ignore in-memory registry
    runs = []
    if ARTIFACTS_ROOT.exists():
        for p in sorted(ARTIFACTS_ROOT.iterdir()):
            if p.is_dir() and (p / 'run.json').exists():
                try:
                    meta = json.loads((p / 'run.json').read_text())
                except (OSError, ValueError):
                    logger.warning("skipping unreadable run metadata in %s", p)
                    continue
                runs.append({
                    'run_id': meta.get('run_id') or p.name,
                    'case_name': meta.get('case_name'),
                    'status': meta.get('status'),
                    'summary': meta.get('summary'),
                    'artifacts': meta.get('artifacts', []),
                    'completed_at': meta.get('completed_at'),
                })
    return jsonify({'runs': runs})

@app.get('/runs/<rid>/download.zip')
def download_zip(rid: str):
    # Create a zip of all artifacts for a run
    run_dir = ARTIFACTS_ROOT / rid
    if not run_dir.exists():
        return jsonify({'error': 'not_found'}), 404
    # Build zip in memory
    mem = io.BytesIO()
    with zipfile.ZipFile(mem, mode='w', compression=zipfile.ZIP_DEFLATED) as zf:
        for child in run_dir.iterdir():
            if child.is_file() and child.name != 'run.json':
                zf.writestr(child.name, child.read_bytes())
    mem.seek(0)
    return Response(mem.getvalue(), mimetype='application/zip', headers={
        'Content-Disposition': f'attachment; filename="{rid}.zip"'
    })


if __name__ == '__main__':
    from services.config.env import get_log_config
    from services.config.logging import configure_logging

    configure_logging(get_log_config().level)
    app.run(host='0.0.0.0', port=8000)
