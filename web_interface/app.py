"""
Flask web interface for the Entry2JS transpiler.

Exposes the converter to a browser front end:
  GET  /api/info      tool name, version, description
  POST /api/convert   transpile an extracted project; progress is pushed
                      over Socket.IO as 'proc:log' events
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO
import logging
from dataclasses import replace

# Import our transpiler components
import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from entry2js_core import __version__, __author__
from entry2js_core.config import TranspilerConfig
from entry2js_core.exceptions import ManifestNotFoundError, TranspilerError
from entry2js_core.orchestrator import TranspileOrchestrator

app = Flask(__name__)
app.config['SECRET_KEY'] = os.environ.get('ENTRY2JS_SECRET_KEY', 'entry2js-secret-key')
CORS(app)
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

logger = logging.getLogger(__name__)


@app.route('/api/info', methods=['GET'])
def get_info():
    """Describe the tool."""
    return jsonify({
        'success': True,
        'data': {
            'name': 'entry2js',
            'version': __version__,
            'description': 'Transpiles Entry projects into FastEntry JavaScript.',
            'author': __author__,
            'license': 'MIT'
        }
    })


@app.route('/api/convert', methods=['POST'])
def convert_project():
    """Transpile the project whose extracted project.json is given as 'manifest_path'."""
    data = request.get_json(silent=True) or {}
    manifest_path = data.get('manifest_path')
    if not manifest_path:
        return jsonify({
            'success': False,
            'error': 'manifest_path is required'
        }), 400

    try:
        config = TranspilerConfig.from_env()
        if data.get('timeout') is not None:
            config = replace(config, unit_timeout=float(data['timeout']) or None)
    except (TypeError, ValueError) as e:
        return jsonify({
            'success': False,
            'error': f"Invalid configuration: {e}"
        }), 400

    log = []

    def on_progress(message):
        log.append(message)
        socketio.emit('proc:log', message)

    try:
        orchestrator = TranspileOrchestrator(config, on_progress=on_progress)
        report = orchestrator.run(manifest_path)
        return jsonify({
            'success': True,
            'data': report.to_dict(),
            'log': log
        })
    except ManifestNotFoundError as e:
        return jsonify({
            'success': False,
            'error': str(e),
            'log': log
        }), 404
    except TranspilerError as e:
        logger.error(f"Conversion failed: {e}")
        return jsonify({
            'success': False,
            'error': str(e),
            'log': log
        }), 500


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    host = os.environ.get('ENTRY2JS_HOST', '127.0.0.1')
    port = int(os.environ.get('ENTRY2JS_PORT', '5002'))

    print(f"Access the interface at: http://localhost:{port}")

    socketio.run(app, host=host, port=port, use_reloader=False, allow_unsafe_werkzeug=True)
