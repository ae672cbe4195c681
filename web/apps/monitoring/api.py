from django.db import connection
from django.http import JsonResponse

from apps.orders import providers


def health_view(_request):
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except Exception:
        db_ok = False

    pool = providers.get_watcher_pool()
    watchers = {
        # pool threads start with the first scheduled watcher
        "ok": not pool.closed,
        "started": pool.running,
        "queued": pool.queued,
        "active": pool.active,
    }

    code = 200 if db_ok else 503
    return JsonResponse(
        {"ok": db_ok, "components": {"db": {"ok": db_ok}, "watchers": watchers}},
        status=code,
    )
