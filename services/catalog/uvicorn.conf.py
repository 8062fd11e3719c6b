import os

host = "0.0.0.0"
port = int(os.getenv("PORT", "9001"))
# reservations are serialised by row locks, so extra workers only add contention
workers = int(os.getenv("UVICORN_WORKERS", str(min(4, max(2, (os.cpu_count() or 1))))))
loop = "uvloop"  # requires uvicorn[standard]
http = "h11"
timeout_keep_alive = int(os.getenv("UVICORN_KEEPALIVE", "5"))
log_level = os.getenv("LOG_LEVEL", "info")
