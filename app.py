"""Main Flask WSGI application hosting the supplier price-list service."""

from config import load_settings
from logger import setup_logger
from views import create_app

settings = load_settings()
setup_logger(None, settings.log_level, settings.log_dir)

app, storage_strategy = create_app(testing=False, settings=settings)

if __name__ == '__main__':
    app.run(host='0.0.0.0', port=settings.port)
