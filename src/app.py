# Character viewer web server
# Serves the compiled bundle, every unknown route gets the entry document
import json
import logging
import os
import socket
import time
from datetime import datetime
from pathlib import Path, PurePosixPath

from flask import Flask, Response, abort, g, render_template, request
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from characters import CHARACTERS_URL, REQUEST_TIMEOUT, ViewState, fetch_characters

BUNDLE_DIR = os.getenv('BUNDLE_DIR', 'build')
HOST = os.getenv('HOST', '0.0.0.0')
PORT = int(os.getenv('PORT', '8080'))
MANIFEST_NAME = 'asset-manifest.json'
ENTRY_DOCUMENT = 'index.html'
STATIC_MAX_AGE = 60 * 60 * 24 * 365  # hashed names, safe to cache for a year


class BundleNotFound(RuntimeError):
    """Server started without a compiled bundle"""


def load_manifest(bundle_dir: Path) -> dict:
    if not (bundle_dir / ENTRY_DOCUMENT).is_file():
        raise BundleNotFound(f'{ENTRY_DOCUMENT} not found in {bundle_dir}, run the build first')
    try:
        with open(bundle_dir / MANIFEST_NAME, encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise BundleNotFound(f'unreadable {MANIFEST_NAME} in {bundle_dir}: {e}') from e


def create_app(bundle_dir=None, characters_url=None, request_timeout=None):
    bundle_dir = Path(bundle_dir or BUNDLE_DIR).resolve()
    manifest = load_manifest(bundle_dir)

    app = Flask(
        __name__,
        static_folder=str(bundle_dir / 'static'),
        static_url_path='/static',
        template_folder=str(bundle_dir),
    )
    app.config.update(
        CHARACTERS_URL=characters_url or CHARACTERS_URL,
        REQUEST_TIMEOUT=request_timeout if request_timeout is not None else REQUEST_TIMEOUT,
        SEND_FILE_MAX_AGE_DEFAULT=STATIC_MAX_AGE,
    )
    assets = manifest.get('files', {})

    # one registry per app so test apps do not collide
    registry = CollectorRegistry()
    request_count = Counter(
        'frontend_http_requests_total',
        'Total number of HTTP requests processed by the frontend service',
        ['method', 'endpoint', 'status'],
        registry=registry,
    )
    request_latency = Histogram(
        'frontend_http_request_latency_seconds',
        'Latency of HTTP requests processed by the frontend service',
        ['endpoint'],
        registry=registry,
    )
    character_fetches = Counter(
        'frontend_character_fetches_total',
        'Character API fetches by outcome',
        ['outcome'],
        registry=registry,
    )
    app.extensions['metrics_registry'] = registry

    @app.before_request
    def start_timer():
        """Remember when the request started for the latency histogram"""
        if request.path == '/metrics':
            return
        g.request_start_time = time.time()

    @app.after_request
    def record_request_metrics(response):
        if request.path != '/metrics':
            elapsed = time.time() - getattr(g, 'request_start_time', time.time())
            endpoint = request.endpoint or 'unknown'
            request_latency.labels(endpoint=endpoint).observe(elapsed)
            request_count.labels(
                method=request.method,
                endpoint=endpoint,
                status=response.status_code
            ).inc()
        return response

    @app.context_processor
    def asset_helpers():
        def asset_url(name):
            # fall back to the plain path so a stale manifest degrades, not 500s
            return assets.get(name, f'/static/{name}')
        return {'asset_url': asset_url}

    @app.route('/metrics')
    def metrics():
        return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)

    # liveness/readiness probe
    @app.route('/api/health')
    def health():
        return {
            'status': 'ok',
            'service': 'frontend',
            'hostname': socket.gethostname(),
            'timestamp': datetime.now().isoformat(),
        }

    @app.route('/', defaults={'path': ''})
    @app.route('/<path:path>')
    def entry(path):
        """Any client-side route renders the entry document"""
        # favicon.ico, robots.txt and the like name files, not routes
        if PurePosixPath(path).suffix not in ('', '.html'):
            abort(404)
        load = fetch_characters(
            url=app.config['CHARACTERS_URL'],
            timeout=app.config['REQUEST_TIMEOUT'],
        )
        character_fetches.labels(outcome='success' if load.ok else 'failure').inc()
        if not load.ok:
            app.logger.warning('Rendering load-failed state for /%s: %s', path, load.error)
        return render_template(ENTRY_DOCUMENT, state=ViewState(load=load))

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    app.logger.info('Serving bundle from %s', Path(BUNDLE_DIR).resolve())
    app.logger.info('Character API: %s', app.config['CHARACTERS_URL'])
    app.run(host=HOST, port=PORT)
