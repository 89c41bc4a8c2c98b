# securebackup/operations/health_monitor.py
# Liveness/Readiness health checks (content store, disk, signing key)

import shutil
import logging
from typing import Dict
from flask import Blueprint, current_app, jsonify

logger = logging.getLogger(__name__)

HEALTH_PROBE = b"securebackup-health-probe"

health_bp = Blueprint('health', __name__)


def _check_store(store) -> Dict:
    # same bytes, same id: repeated probes do not grow the store
    try:
        content_id = store.put(HEALTH_PROBE)
        ok = store.get(content_id) == HEALTH_PROBE
        return {"ok": ok, "detail": type(store).__name__}
    except Exception as e:
        logger.warning(f"Content store health probe failed: {e}")
        return {"ok": False, "error": str(e), "detail": type(store).__name__}


def _check_disk(min_free_disk_gb: float) -> Dict:
    total, used, free = shutil.disk_usage(".")
    free_gb = free / (1024**3)
    return {"ok": free_gb >= min_free_disk_gb, "free_gb": round(free_gb, 2), "min_required_gb": min_free_disk_gb}


def _check_signing(engine) -> Dict:
    return {"ok": engine.can_sign, "can_sign": engine.can_sign}


def check_health(store, engine, min_free_disk_gb: float = 1.0) -> Dict:
    """Aggregate overall service health."""
    st = _check_store(store)
    disk = _check_disk(min_free_disk_gb)
    signing = _check_signing(engine)
    overall = st["ok"] and disk["ok"] and signing["ok"]
    return {"store": st, "disk": disk, "signing": signing, "overall_ok": overall}


@health_bp.get("/health")
def liveness():
    services = current_app.extensions['securebackup']
    res = check_health(services.store, services.engine, current_app.config['MIN_FREE_DISK_GB'])
    code = 200 if res["overall_ok"] else 503
    return jsonify(res), code


@health_bp.get("/ready")
def readiness():
    # readiness: store + signing key only
    services = current_app.extensions['securebackup']
    st = _check_store(services.store)
    signing = _check_signing(services.engine)
    ok = st["ok"] and signing["ok"]
    res = {"store": st, "signing": signing, "overall_ok": ok}
    code = 200 if ok else 503
    return jsonify(res), code
