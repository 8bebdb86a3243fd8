import atexit
import logging
import signal
import sys

from medgate import create_app

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

app = create_app()

# Stop in-flight chat polling when the process goes down
atexit.register(app.extensions['stopping'].set)


def _handle_sigterm(signum, frame):
    app.extensions['stopping'].set()
    sys.exit(0)


if __name__ == '__main__':
    signal.signal(signal.SIGTERM, _handle_sigterm)
    host = app.config['SERVER_HOST']
    port = app.config['SERVER_PORT']
    print(f"Starting Flask server on port {port}...")
    print(f"Status URL: http://localhost:{port}/api/status")
    print(f"Coze bot configured: {'Yes' if app.config.get('COZE_BOT_ID') else 'No - check .env file'}")
    app.run(debug=app.config['DEBUG'], host=host, port=port)
