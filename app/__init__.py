"""
Creates and returns main flask app
"""

import threading

from flask import Flask, jsonify
from flask_cors import CORS

from .rebalancer.routes import monitor, start_monitor


def create_app(start_monitoring=True):
    """Create Flask app and start the vault monitor in the background"""
    app = Flask(__name__)
    CORS(app)

    @app.route("/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "healthy"}), 200

    if start_monitoring:
        monitor_thread = threading.Thread(target=start_monitor, daemon=True)
        monitor_thread.start()

    # Register the monitor blueprint after starting the monitor
    app.register_blueprint(monitor, url_prefix="/monitor")

    return app
