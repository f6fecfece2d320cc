from reward_engine.tasks.scheduled import start_maintenance_thread
from reward_engine.utils.logger import setup_logging
from reward_engine.web.flask_app import create_app
from config import config
import logging

setup_logging(config.LOG_LEVEL, config.LOG_FILE)
logger = logging.getLogger(__name__)

config.log_config_summary()
app = create_app(config)
start_maintenance_thread(app.extensions['reward_engine'], config.SWEEP_INTERVAL_MINUTES)

if __name__ == '__main__':
    logger.info(f"Starting reward engine on port {config.PORT}")
    app.run(host='0.0.0.0', port=config.PORT, debug=config.ENV == 'development')
