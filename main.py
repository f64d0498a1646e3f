# main.py
import json
import uuid
from time import time

import firebase_admin
from fastapi import FastAPI, Request
from firebase_admin import credentials

from config import settings
from app.scripts.logging_config import setup_logging, get_logger, set_request_id

# 1) 로깅 설정(최우선)
# 운영 환경에서 JSON 로그를 원하면 json_fmt=True
setup_logging(json_fmt=False)
logger = get_logger(__name__)

# 2) Firebase 초기화 (items 컬렉션 읽기 전용)
cred_obj = None

try:
    if settings.FIREBASE_CREDENTIALS_JSON_STRING:
        cred_obj = credentials.Certificate(json.loads(settings.FIREBASE_CREDENTIALS_JSON_STRING))
        logger.info("Firebase credentials loaded from FIREBASE_CREDENTIALS_JSON_STRING.")
    elif settings.GOOGLE_APPLICATION_CREDENTIALS:
        cred_obj = credentials.Certificate(settings.GOOGLE_APPLICATION_CREDENTIALS)
        logger.info("Firebase credentials loaded from GOOGLE_APPLICATION_CREDENTIALS file.")

    if cred_obj:
        firebase_admin.initialize_app(cred_obj)
        logger.info("Firebase initialized successfully.")
    else:
        logger.warning("Firebase credentials not found. Item search will fail until configured.")
except Exception as e:
    logger.exception("Firebase initialization failed: %s", e)

if not settings.OPENAI_API_KEY and settings.EMBEDDING_PROVIDER.lower() == "openai":
    logger.warning("OPENAI_API_KEY not set: /items/search will answer 503 embedding_not_configured.")

# 3) FastAPI 앱
app = FastAPI(title="Campus Lost & Found Search API")

# 4) 요청 로깅 미들웨어
@app.middleware("http")
async def log_requests(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    set_request_id(rid)

    start = time()
    path = request.url.path
    method = request.method
    client_ip = getattr(request.client, 'host', '-') if request.client else '-'

    logger.info("REQ start %s %s ip=%s", method, path, client_ip)
    status = "NA"
    try:
        response = await call_next(request)
        status = response.status_code
        response.headers["X-Request-ID"] = rid
        return response
    finally:
        duration = (time() - start) * 1000
        logger.info("REQ end %s %s status=%s %.1fms", method, path, status, duration)

# 5) 라우터
from app.api import items

app.include_router(items.router)

# 6) 엔드포인트
@app.get("/")
def root():
    return {"message": "Lost & Found semantic search", "routes": [
        "/items/search",
    ]}
