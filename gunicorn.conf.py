import os

bind = f"0.0.0.0:{os.getenv('PORT', 8000)}"
# Signing sessions and scanner sockets live in worker memory, so keep one worker
# unless sessions are pinned to a worker by the proxy
workers = int(os.getenv('WEB_CONCURRENCY', 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
timeout = int(os.getenv('GUNICORN_TIMEOUT', 120))
graceful_timeout = 30
keepalive = 5
loglevel = os.getenv('LOG_LEVEL', 'info').lower()
accesslog = "-"
