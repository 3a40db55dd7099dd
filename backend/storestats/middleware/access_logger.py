"""Registro de visitas a las páginas públicas de stores (GET /store/{id})."""
import hashlib
import re

from fastapi import Request
from loguru import logger
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.responses import Response

from storestats.core.config import get_settings
from storestats.core.database import session_scope
from storestats.models.access_log import AccessLog

STORE_PATH_RE = re.compile(r"^/store/(\d+)")


def hash_ip(ip: str, salt: str) -> str:
    return hashlib.sha256(f"{ip}{salt}".encode()).hexdigest()


def extract_store_id(method: str, path: str) -> int | None:
    if method != "GET":
        return None
    match = STORE_PATH_RE.match(path)
    if not match:
        return None
    store_id = int(match.group(1))
    return store_id or None


def _save_access(store_id: int, url: str, ip_hash: str, user_agent: str, referer: str) -> None:
    with session_scope() as db:
        db.add(AccessLog(
            store_id=store_id,
            url=url,
            ip_hash=ip_hash,
            user_agent=user_agent,
            referer=referer,
        ))


async def _record_access(store_id: int, url: str, ip_hash: str, user_agent: str, referer: str) -> None:
    try:
        await run_in_threadpool(_save_access, store_id, url, ip_hash, user_agent, referer)
        logger.debug(f"Acceso registrado: {url} (store {store_id})")
    except Exception as e:
        # El registro nunca afecta a la respuesta
        logger.error(f"Error registrando acceso a {url}: {e}")


def _append_background(response: Response, task: BackgroundTask) -> None:
    previous = response.background
    if previous is None:
        response.background = task
        return

    async def run_both() -> None:
        await previous()
        await task()

    response.background = BackgroundTask(run_both)


async def access_logger_middleware(request: Request, call_next):
    response = await call_next(request)

    store_id = extract_store_id(request.method, request.url.path)
    if store_id is None:
        return response

    # Se registra después de enviar la respuesta
    client_ip = request.client.host if request.client else ""
    _append_background(response, BackgroundTask(
        _record_access,
        store_id,
        request.url.path,
        hash_ip(client_ip, get_settings().access_log_salt),
        request.headers.get("user-agent", ""),
        request.headers.get("referer", ""),
    ))
    return response
