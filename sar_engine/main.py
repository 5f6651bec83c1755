import datetime as dt
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .audit import get_audit_timeline, log_event
from .case_store import case_exists, get_case, list_cases, save_sar_draft
from .config import LOG_LEVEL, load_engine_config
from .db import SessionLocal, init_db
from .errors import InvalidCase, SAREngineError
from .evaluator import CaseEvaluator
from .intake import case_from_upload
from .monitoring import monitoring
from .service import process_upload

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    # Configuration errors abort startup rather than failing individual cases.
    config = load_engine_config()
    app.state.engine_config = config
    app.state.evaluator = CaseEvaluator(config)
    logger.info("rule engine %s loaded with %d rules", config.version, len(app.state.evaluator.rules))
    yield


app = FastAPI(title="SAR Risk Engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.post("/evaluate")
def evaluate(customer: dict):
    try:
        case = case_from_upload(customer, "ADHOC", dt.datetime.now(dt.timezone.utc).replace(tzinfo=None))
        assessment = app.state.evaluator.evaluate(case)
    except SAREngineError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return assessment.to_dict()


@app.post("/cases/upload")
def upload_cases(body: dict):
    session = SessionLocal()
    try:
        result = process_upload(session, body, app.state.engine_config, evaluator=app.state.evaluator)
    except InvalidCase as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        logger.exception("file upload processing failed")
        raise HTTPException(status_code=500, detail=f"Failed to process file: {exc}")
    finally:
        session.close()

    return {
        "success": True,
        "data": result,
        "message": f"Processed {result['processed']} customers. Generated {result['sars_generated']} SARs.",
    }


@app.post("/cases/{case_id}/draft")
def save_draft(case_id: str, payload: dict):
    narrative_text = payload.get("narrative_text")
    if not narrative_text:
        raise HTTPException(status_code=400, detail="Narrative text is required")
    try:
        version_number = float(payload.get("version_number", 1.0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail="version_number must be a number")
    user_id = payload.get("user_id", "analyst")

    session = SessionLocal()
    try:
        if not case_exists(session, case_id):
            raise HTTPException(status_code=404, detail="Case not found")
        draft = save_sar_draft(
            session, case_id, narrative_text,
            version_number=version_number, source_event="MANUAL_EDIT", user_id=user_id,
        )
        log_event(session, case_id, "DRAFT_SAVED", f"Draft saved (Version {version_number:.1f})",
                  {"version_number": version_number}, user_id=user_id)
        result = {
            "case_id": case_id,
            "version_number": draft.version_number,
            "source_event": draft.source_event,
        }
    finally:
        session.close()
    return {"success": True, "data": result}


@app.get("/cases")
def cases():
    session = SessionLocal()
    try:
        return list_cases(session)
    finally:
        session.close()


@app.get("/cases/{case_id}")
def case_detail(case_id: str):
    session = SessionLocal()
    try:
        result = get_case(session, case_id)
    finally:
        session.close()
    if result is None:
        raise HTTPException(status_code=404, detail="Case not found")
    return result


@app.get("/cases/{case_id}/audit")
def case_audit(case_id: str):
    session = SessionLocal()
    try:
        if not case_exists(session, case_id):
            raise HTTPException(status_code=404, detail="Case not found")
        timeline = get_audit_timeline(session, case_id)
    finally:
        session.close()
    return {"case_id": case_id, "timeline": timeline}


@app.get("/metrics")
def get_metrics():
    return monitoring.snapshot()
