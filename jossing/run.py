"""Single entry point for the Jøssing server.

Usage:
    jossing-server

Environment variables (all optional):
    FLASK_PORT          port for the web server     (default 3000)
    FLASK_HOST          bind address                (default 0.0.0.0)
    FLASK_DEBUG         1 = enable Flask reloader   (default 0)
    JOSSING_LOG_LEVEL   logging level               (default INFO)
    JOSSING_STORE       memory | postgres           (default memory)
"""
import logging

from jossing import config


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    from jossing.app import app as web_app

    logging.getLogger(__name__).info(
        f"Starting server on {config.FLASK_HOST}:{config.FLASK_PORT} (store: {config.STORE_BACKEND})"
    )
    web_app.run(host=config.FLASK_HOST, port=config.FLASK_PORT, debug=config.FLASK_DEBUG)


if __name__ == '__main__':
    main()
