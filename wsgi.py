from donorflow.api import create_app
from donorflow.config import HOST, PORT, configure_logging

configure_logging()
application = create_app()
flask_app = application


if __name__ == "__main__":
    application.run(host=HOST, port=PORT, debug=False)
