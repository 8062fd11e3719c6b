import os, multiprocessing

def cpu():
    return max(1, (os.cpu_count() or multiprocessing.cpu_count()))

# Worker processes
workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, cpu() * 2), 8))))

# Threads per worker; checkout blocks on catalog and processor calls
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

# Timeouts (must exceed HTTP_TIMEOUT_SECS * HTTP_RETRY_MAX)
timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

preload_app = True
max_requests = int(os.getenv("GUNI_MAX_REQUESTS", "2000"))
max_requests_jitter = int(os.getenv("GUNI_MAX_REQUESTS_JITTER", "200"))

# Logs to stdout; access log as JSON lines like the application loggers
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")
access_log_format = (
    '{"remote_addr": "%(h)s", "method": "%(m)s", "path": "%(U)s", "status": "%(s)s", '
    '"duration_us": "%(D)s", "request_id": "%({x-request-id}i)s"}'
)
logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
            "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "json"},
    },
    "loggers": {
        "gunicorn.error": {"handlers": ["console"], "level": loglevel.upper(), "propagate": False},
        "gunicorn.access": {"handlers": ["console"], "level": "INFO", "propagate": False},
    },
}
