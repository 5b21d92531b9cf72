"""
POS Rewards entry point.
"""
import os
import sys
import logging

logger = logging.getLogger('posrewards.run')

config_name = os.getenv('FLASK_ENV', 'production')

try:
    from posrewards import create_app
    app = create_app(config_name)
    logger.info(f"[POS Rewards] App created ({config_name}), {len(list(app.url_map.iter_rules()))} routes")
except Exception:
    logger.exception("[POS Rewards] FATAL ERROR during app creation")
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
