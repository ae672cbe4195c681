import os

wsgi_app = "config.wsgi:application"
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"

# Each worker process runs its own watcher pool; keep the count modest
workers = int(os.getenv("GUNI_WORKERS", str(min(max(2, os.cpu_count() or 1), 4))))

# Threads per worker for blocking I/O (DB, gateway)
worker_class = "gthread"
threads = int(os.getenv("GTHREADS", "4"))

timeout = int(os.getenv("GUNI_TIMEOUT", "60"))
# Leaves room for the watcher pool to drain on shutdown
graceful_timeout = int(os.getenv("GUNI_GRACEFUL_TIMEOUT", "30"))
keepalive = int(os.getenv("GUNI_KEEPALIVE", "5"))

# Watcher threads start lazily, so preloading before fork is safe
preload_app = True
# No max_requests recycling: a recycled worker would strand its sleeping watchers

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNI_LOGLEVEL", "info")


def worker_exit(server, worker):
    from apps.orders.providers import shutdown_watchers

    drained = shutdown_watchers()
    server.log.info("watcher pool drained=%s pid=%s", drained, worker.pid)
