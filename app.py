"""
Snake Rodeo - Flask Status App

Small read-mostly HTTP surface over the daemon's files: status, ledger
summaries, and pause/resume. The daemon itself runs in its own process
(`snake start`); this app never writes AgentState.
"""

import logging

from flask import Flask, jsonify, request

from config import config
from engine import process
from persistence import AgentStateRepository, StatsRepository, init_db
import settings

logger = logging.getLogger(__name__)

VERSION = '0.3.0'


def create_app(agent_store=None, stats_repo=None, settings_loader=None) -> Flask:
    """
    Build the app. Collaborators default to the real files under the
    config/state/data directories.
    """
    app = Flask(__name__)

    agent_store = agent_store or AgentStateRepository(config.STATE_FILE)
    load_settings = settings_loader or settings.load_settings
    if stats_repo is None:
        init_db()
        stats_repo = StatsRepository()

    @app.route('/health')
    def health():
        """Health check endpoint for monitoring"""
        return {
            'status': 'ok',
            'daemon_running': process.is_daemon_running() is not None,
            'version': VERSION,
        }

    @app.route('/status')
    def status():
        return jsonify(process.get_daemon_status(load_settings(), agent_store))

    @app.route('/stats')
    def stats():
        limit = request.args.get('limit', 10, type=int)
        return jsonify({
            'overall': stats_repo.get_overall_stats(),
            'recent_games': [g.to_dict() for g in stats_repo.get_recent_games(limit)],
        })

    @app.route('/votes')
    def votes():
        limit = request.args.get('limit', 20, type=int)
        return jsonify([v.to_dict() for v in stats_repo.get_recent_votes(limit)])

    @app.route('/pause', methods=['POST'])
    def pause():
        result = process.pause_daemon()
        logger.info("⏸️ Paused via status app")
        return jsonify(result)

    @app.route('/resume', methods=['POST'])
    def resume():
        result = process.resume_daemon()
        logger.info("▶️ Resumed via status app")
        return jsonify(result)

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    logger.info(f'=' * 60)
    logger.info(f'🐍 Snake Rodeo Status App')
    logger.info(f'Version: {VERSION}')
    logger.info(f'Host: {config.HOST}:{config.PORT}')
    logger.info(f'=' * 60)
    create_app().run(host=config.HOST, port=config.PORT)
