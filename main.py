import logging
import os

from pos_config import PosConfig
from pos_server import create_app


def run():
    config = PosConfig.from_env()
    logging.basicConfig(level=config.log_level_value(), format="%(asctime)s %(levelname)s %(name)s %(message)s")
    app = create_app(config=config)
    if not config.has_erp_credentials:
        app.logger.warning("ERPNEXT_URL, ERPNEXT_API_KEY or ERPNEXT_API_SECRET missing; remote lookups will fail")
    app.run(
        host=os.getenv('HOST', '0.0.0.0'),
        port=int(os.getenv('PORT', '5000')),
        debug=os.getenv('FLASK_DEBUG', '0') == '1',
    )


if __name__ == '__main__':
    run()
